"""
Termination signal carried over the channel layer.
"""

from dataclasses import dataclass
from datetime import datetime

TERMINATED_MESSAGE_TYPE = 'session.terminated'


def user_group_name(user_id) -> str:
    return f'session.user.{user_id}'


@dataclass(frozen=True)
class TerminationSignal:
    user_id: str
    issued_at: datetime

    @property
    def group_name(self) -> str:
        return user_group_name(self.user_id)

    def to_message(self) -> dict:
        return {
            'type': TERMINATED_MESSAGE_TYPE,
            'user_id': self.user_id,
            'issued_at': self.issued_at.isoformat(),
        }
