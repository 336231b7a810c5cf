"""Worker that releases seller payouts once the escrow hold has passed."""

import asyncio
import logging
from typing import Optional

from config import settings_conf
from orders import OrderManager

# Configure logging
logger = logging.getLogger(__name__)

async def release_once(manager: Optional[OrderManager] = None) -> int:
    """Run one release sweep and return how many payouts were released."""
    manager = manager or OrderManager()
    released = await manager.release_matured_holds()
    if released > 0:
        logger.info(f"Released {released} escrow holds")
    return released

async def release_escrow_task(interval: Optional[int] = None):
    """Release matured escrow holds every ``interval`` seconds until cancelled."""
    interval = interval or settings_conf['escrow_check_interval']
    manager = OrderManager()
    logger.info(f"Escrow release worker starting (every {interval}s)")
    while True:
        try:
            await release_once(manager)
        except Exception as e:
            logger.error(f"Error in escrow release task: {e}")
        await asyncio.sleep(interval)

if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    try:
        asyncio.run(release_escrow_task())
    except KeyboardInterrupt:
        pass
