import json
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

class BlockType(str, Enum):
    OPEN = "open"
    SEND = "send"
    RECEIVE = "receive"
    CHANGE = "change"

class RpcAction(str, Enum):
    CREATE_ACCOUNT = "create_account"
    AVAILABLE_SUPPLY = "available_supply"
    CANOE_SERVER_STATUS = "canoe_server_status"
    QUOTA_FULL = "quota_full"
    UPDATE_SERVER_MAP = "update_server_map"

class BlockCallback(BaseModel):
    """Callback body posted by the node for every confirmed block.

    The node sends the nested ``block`` as a JSON-encoded string; already
    decoded objects are accepted too.
    """
    account: Optional[str] = None
    hash: Optional[str] = None
    amount: Optional[Any] = None
    destination: Optional[str] = None
    block: Any = None

    def contents(self) -> Dict[str, Any]:
        """Return the nested block as a dict, raising ValueError if it is not one."""
        blk = self.block
        if isinstance(blk, (str, bytes)):
            blk = json.loads(blk)
        if not isinstance(blk, dict):
            raise ValueError("block is not a JSON object")
        return blk

    def block_type(self) -> str:
        blk_type = self.contents().get("type")
        if not isinstance(blk_type, str):
            raise ValueError("block has no type")
        return blk_type

    def recipient(self) -> Optional[str]:
        return self.destination or self.contents().get("destination")

class CreateAccount(BaseModel):
    token: str = Field(min_length=1, max_length=128)
    tokenpass: str = Field(min_length=1)

class UpdateServerMap(BaseModel):
    wallet: str = Field(min_length=1)
    accounts: List[str]
