"""
Forced session termination.

Credentials are invalidated and 2FA verifications removed inside one
transaction; the realtime signal is only published after that
transaction commits, so a client reacting to it can never observe
still-valid tokens.
"""

import logging
from datetime import timedelta

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone

from access_core.accounts.identity import identity_store
from access_core.accounts.models import SecurityEvent
from access_core.core.conf import access_settings
from access_core.core.exceptions import Forbidden, NotFound, Unauthorized
from access_core.twofactor.models import SessionVerification

from .signals import TerminationSignal

logger = logging.getLogger(__name__)

User = get_user_model()


class SessionBroadcaster:
    """Publishes termination signals to the user's channel group"""

    def publish(self, signal: TerminationSignal) -> bool:
        channel_layer = get_channel_layer()
        if channel_layer is None:
            logger.warning("No channel layer configured, termination of %s not broadcast", signal.user_id)
            return False
        try:
            async_to_sync(channel_layer.group_send)(signal.group_name, signal.to_message())
        except Exception:
            logger.exception("Failed to broadcast termination for user %s", signal.user_id)
            return False
        logger.info("Broadcast termination to %s", signal.group_name)
        return True


class SessionTerminationService:

    def __init__(self, identity=identity_store, broadcaster=None):
        self.identity = identity
        self.broadcaster = broadcaster or SessionBroadcaster()

    def terminate(self, target_user_id, by_user, context=None, now=None) -> TerminationSignal:
        """
        Revoke all of the target's sessions and tell its live clients.

        Raises Forbidden for self-termination or a caller who may not
        administer the target, NotFound for an unknown target.
        """
        if by_user is None or not by_user.is_authenticated:
            raise Unauthorized('Authentication required')
        if not by_user.is_administrator:
            raise Forbidden('Administrator role required.')
        if str(target_user_id) == str(by_user.pk):
            raise Forbidden('You cannot terminate your own session', code='self_termination')

        target = User.objects.filter(pk=target_user_id).first()
        if target is None:
            raise NotFound('User not found')
        if not by_user.can_administer(target):
            raise Forbidden('You cannot terminate sessions for this user.')

        now = now or timezone.now()
        signal = TerminationSignal(user_id=str(target.pk), issued_at=now)

        with transaction.atomic():
            self.identity.invalidate_all_tokens(target, now)
            cleared, _ = SessionVerification.objects.filter(user=target).delete()
            SecurityEvent.record(
                target,
                SecurityEvent.EventType.SESSION_TERMINATED,
                description=f'Sessions terminated by {by_user.email}',
                actor=by_user,
                context=context,
                verifications_cleared=cleared,
            )
            transaction.on_commit(lambda: self.broadcaster.publish(signal))

        logger.info("Sessions of %s terminated by %s", target.email, by_user.email)
        return signal

    def active_sessions(self, by_user, now=None) -> list:
        """
        Users who signed in within the inactivity window and have not been
        terminated since.
        """
        if by_user is None or not by_user.is_authenticated or not by_user.is_administrator:
            raise Forbidden('Administrator role required.')

        now = now or timezone.now()
        cutoff = now - timedelta(minutes=access_settings.INACTIVITY_LOGOUT_MINUTES)

        users = User.objects.filter(is_active=True, last_login_at__gte=cutoff).filter(
            Q(sessions_invalidated_at__isnull=True) | Q(sessions_invalidated_at__lt=F('last_login_at'))
        ).select_related('company').order_by('-last_login_at')
        if not by_user.is_super_admin:
            users = users.filter(company_id=by_user.company_id)

        return [
            {
                'user_id': str(user.pk),
                'email': user.email,
                'name': user.get_full_name(),
                'role': user.role,
                'company': user.company.name if user.company else None,
                'last_sign_in_at': user.last_login_at.isoformat(),
                'is_current_user': user.pk == by_user.pk,
            }
            for user in users
        ]


session_termination = SessionTerminationService()
