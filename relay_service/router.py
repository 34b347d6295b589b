"""
Block router: classifies a confirmed block from the node callback, finds the
wallet that should hear about it and republishes it on that wallet's topic.
"""
import logging
from typing import Any, Callable, Dict, Optional
from pydantic import ValidationError
from redis.exceptions import RedisError
from common.mqtt import BlockPublisher, wallet_topic
from common.redis_client import AccountDirectory
from common.schemas import BlockCallback, BlockType
from common.tracing import Tracer, relay_tracer

logger = logging.getLogger(__name__)

# Which account a block is about; None means the block is not delivered.
# Sends notify the receiving wallet, not the sender.
SUBJECT_ACCOUNT: Dict[BlockType, Callable[[BlockCallback], Optional[str]]] = {
    BlockType.OPEN: lambda blk: blk.account,
    BlockType.SEND: lambda blk: blk.recipient(),
    BlockType.RECEIVE: lambda blk: blk.account,
    BlockType.CHANGE: lambda blk: None,
}

class BlockRouter:
    def __init__(self, directory: AccountDirectory, publisher: BlockPublisher, tracer: Tracer = relay_tracer):
        self.directory = directory
        self.publisher = publisher
        self.tracer = tracer

    async def route(self, body: Dict[str, Any], trace_id: Optional[str] = None) -> None:
        """Route one callback body. Never raises; every failure is logged.

        ``trace_id`` ties the routing span to the callback request that delivered the block.
        """
        with self.tracer.start_span("route_block", trace_id=trace_id) as span:
            try:
                topic = await self._route(body, span)
            except Exception as e:
                span.set_error(e)
                logger.exception(f"Routing failed for block {body.get('hash') if isinstance(body, dict) else None}")
                return
            span.add_tag("topic", topic)

    async def _route(self, body: Dict[str, Any], span) -> Optional[str]:
        try:
            blk = BlockCallback.model_validate(body)
            raw_type = blk.block_type()
        except (ValidationError, ValueError) as e:
            logger.error(f"Unparseable block dropped: {e}")
            return None

        span.add_tag("block.type", raw_type)
        span.add_tag("block.hash", blk.hash)
        logger.debug(f"Acc: {blk.account} Block: {raw_type} amount: {blk.amount}")

        try:
            blk_type = BlockType(raw_type)
        except ValueError:
            logger.error(f"Unknown block type: {raw_type}")
            return None

        account = SUBJECT_ACCOUNT[blk_type](blk)
        if blk_type is BlockType.CHANGE:
            logger.debug("A change block ignored")
            return None
        if not account:
            logger.error(f"{blk_type.value} block without a subject account dropped")
            return None

        try:
            wallet = await self.directory.get_wallet(account)
        except RedisError as e:
            logger.warning(f"Directory lookup for {account} failed, dropping {blk_type.value} block: {e}")
            return None
        if wallet is None:
            return None

        topic = wallet_topic(wallet, blk_type.value)
        self.publisher.publish(topic, body)
        return topic
