"""Link handler: plays the phone's part of a handshake.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from typing import TYPE_CHECKING, Any

from wacore.common.crypto import CryptoUtils
from wacore.common.exceptions import LinkError
from wacore.common.models import LinkRequest, SuccessMessage

if TYPE_CHECKING:
    from wacore.server.session_manager import Peer, SessionManager

QR_PAYLOAD_PARTS = 3
USER_SERVER = "c.us"


class LinkHandler:
    """Completes a waiting client's handshake from a QR payload or pairing code."""

    def __init__(self, session_manager: SessionManager):
        self.session_manager = session_manager
        self.logger = logging.getLogger(__name__)

    async def handle_link(self, req: LinkRequest) -> dict[str, Any]:
        """
        Find the waiting client, build its secret and push the success message.

        Raises:
            LinkError: when no waiting client matches the request
        """
        peer, public_key = self._resolve_peer(req)

        digits = re.sub(r"\D", "", req.phone)
        wid = f"{digits}@{USER_SERVER}"
        try:
            secret, _, _ = CryptoUtils.pack_secret(public_key)
        except ValueError as err:
            msg = f"unusable client public key: {err}"
            raise LinkError(msg, 400) from err
        token = self.session_manager.issue(peer, wid, req.name)

        message = SuccessMessage(
            session=token,
            client_token=peer.client_token or "",
            wid=wid,
            pushname=req.name,
            phone=digits,
            secret=base64.b64encode(secret).decode("ascii"),
        )
        await peer.send_structured(message.to_wire())
        self.logger.info("Linked %s", wid)
        return {"status": "linked", "wid": wid}

    def _resolve_peer(self, req: LinkRequest) -> tuple[Peer, bytes]:
        if req.payload:
            parts = req.payload.split(",")
            if len(parts) != QR_PAYLOAD_PARTS:
                msg = "QR payload must be 'ref,clientId,publicKey'"
                raise LinkError(msg, 400)
            ref, _, encoded_key = parts
            peer = self.session_manager.find_by_ref(ref)
            if peer is None:
                msg = "no client is waiting for this QR code"
                raise LinkError(msg)
            try:
                return peer, base64.b64decode(encoded_key, validate=True)
            except (binascii.Error, ValueError) as err:
                msg = "QR payload carries an invalid public key"
                raise LinkError(msg, 400) from err

        if req.code:
            peer = self.session_manager.find_by_code(req.code)
            if peer is None or peer.public_key is None:
                msg = "no client is waiting for this pairing code"
                raise LinkError(msg)
            return peer, peer.public_key

        msg = "either payload or code is required"
        raise LinkError(msg, 400)
