"""Worker that escalates aging disputes and auto-resolves abandoned ones."""

import asyncio
import logging
from typing import Dict, Optional

from config import settings_conf
from support import DisputeManager

logger = logging.getLogger(__name__)

async def escalate_once(manager: Optional[DisputeManager] = None) -> Dict[str, int]:
    manager = manager or DisputeManager()
    result = await manager.escalate_overdue()
    if result['escalated'] or result['auto_resolved']:
        logger.info(
            f"Escalated {result['escalated']} disputes, "
            f"auto-resolved {result['auto_resolved']}"
        )
    return result

async def escalate_disputes_task(interval: Optional[int] = None):
    """Sweep open disputes every ``interval`` seconds until cancelled."""
    interval = interval or settings_conf['escalation_check_interval']
    manager = DisputeManager()
    logger.info(f"Dispute escalation worker starting (every {interval}s)")
    while True:
        try:
            await escalate_once(manager)
        except Exception as e:
            logger.error(f"Error in dispute escalation task: {e}")
        await asyncio.sleep(interval)
