"""Background workers run alongside the API."""

from .escrow import release_escrow_task, release_once
from .escalation import escalate_disputes_task, escalate_once

__all__ = ['release_escrow_task', 'release_once', 'escalate_disputes_task', 'escalate_once']
