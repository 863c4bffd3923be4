# Common utilities
from wacore.common.crypto import CryptoUtils as CryptoUtils
from wacore.common.framing import FrameCodec as FrameCodec
from wacore.common.framing import FrameKind as FrameKind
from wacore.common.logging_utils import setup_logger as setup_logger

__all__ = ["CryptoUtils", "FrameCodec", "FrameKind", "setup_logger"]
