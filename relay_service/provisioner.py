"""
Account provisioning: writes the credential/ACL row a wallet account needs
before the broker lets it connect.
"""
import json
import logging
from typing import Any, Union
import bcrypt
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from common.error_handling import (
    AccountExistsError, BusinessLogicError, ErrorCodes, ProvisioningError,
)
from relay_service.models import VmqAuthAcl

logger = logging.getLogger(__name__)

# bcrypt only looks at the first 72 bytes of its input
MAX_SECRET_BYTES = 72

def hash_secret(secret: str) -> str:
    """Salted bcrypt hash in the $2a$ form pgcrypto's crypt() can verify"""
    encoded = secret.encode("utf-8")
    if len(encoded) > MAX_SECRET_BYTES:
        raise BusinessLogicError(ErrorCodes.INVALID_INPUT,
                                 f"tokenpass longer than {MAX_SECRET_BYTES} bytes", field="tokenpass")
    return bcrypt.hashpw(encoded, bcrypt.gensalt(prefix=b"2a")).decode("ascii")

def _load_acl(acl: Union[str, Any]) -> Any:
    return json.loads(acl) if isinstance(acl, str) else acl

class AccountProvisioner:
    def __init__(self, session_factory: sessionmaker, publish_acl, subscribe_acl, mountpoint: str = ""):
        self.session_factory = session_factory
        self.publish_acl = _load_acl(publish_acl)
        self.subscribe_acl = _load_acl(subscribe_acl)
        self.mountpoint = mountpoint

    def create_account(self, token: str, token_secret: str) -> None:
        """Insert one credential row for ``token``.

        Raises AccountExistsError when the account was provisioned before and
        ProvisioningError for any other database failure. Either the whole row
        is committed or nothing is.
        """
        row = VmqAuthAcl(
            mountpoint=self.mountpoint,
            client_id=token,
            username=token,
            password=hash_secret(token_secret),
            publish_acl=self.publish_acl,
            subscribe_acl=self.subscribe_acl,
        )
        with self.session_factory() as db:
            db.add(row)
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                logger.info(f"Account {token} already provisioned")
                raise AccountExistsError(token) from e
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Provisioning {token} failed: {e.__class__.__name__}")
                raise ProvisioningError("account provisioning failed", e) from e
        logger.info(f"Provisioned account {token}")
