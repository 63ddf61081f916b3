"""
内容加密模块

生成 Intune 要求的加密内容封包：

    envelope = HMAC-SHA256(mac_key, iv || ciphertext) || iv || ciphertext

密文为 AES-256-CBC + PKCS7；fileDigest 为明文 SHA-256。
格式必须与服务端校验逐字节一致，任何偏差都会在远端静默损坏而非本地报错。
"""

import base64
import hashlib
import hmac
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Union

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives import hmac as crypto_hmac
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..utils.logging import debug, info, LogStage
from ..utils.paths import format_size

KEY_SIZE = 32
MAC_KEY_SIZE = 32
IV_SIZE = 16
MAC_SIZE = 32
PROFILE_IDENTIFIER = "ProfileVersion1"
DIGEST_ALGORITHM = "SHA256"


class EncryptionError(Exception):
    """加密或解密错误"""
    pass


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


@dataclass(frozen=True)
class FileEncryptionInfo:
    """加密描述，提交时发送给服务端用于解密校验

    所有字节字段均为 base64 字符串。仅在一次上传内有效，不持久化。
    """
    encryption_key: str
    mac_key: str
    initialization_vector: str
    mac: str
    file_digest: str
    profile_identifier: str = PROFILE_IDENTIFIER
    file_digest_algorithm: str = DIGEST_ALGORITHM

    def to_graph(self) -> Dict[str, Any]:
        """Graph commit 请求体中的 fileEncryptionInfo"""
        return {
            "@odata.type": "#microsoft.graph.fileEncryptionInfo",
            "encryptionKey": self.encryption_key,
            "macKey": self.mac_key,
            "initializationVector": self.initialization_vector,
            "profileIdentifier": self.profile_identifier,
            "fileDigestAlgorithm": self.file_digest_algorithm,
            "fileDigest": self.file_digest,
            "mac": self.mac,
        }

    def __repr__(self) -> str:
        return f"FileEncryptionInfo(profile={self.profile_identifier!r}, digest={self.file_digest!r})"


@dataclass(frozen=True)
class EncryptedContent:
    """加密结果"""
    envelope: bytes
    plaintext_size: int
    info: FileEncryptionInfo

    @property
    def encrypted_size(self) -> int:
        return len(self.envelope)


def _mac(mac_key: bytes, data: bytes) -> bytes:
    signer = crypto_hmac.HMAC(mac_key, hashes.SHA256())
    signer.update(data)
    return signer.finalize()


class ContentEncryptor:
    """内容加密器"""

    def encrypt_bytes(self, plaintext: bytes) -> EncryptedContent:
        """加密内存中的明文"""
        key = os.urandom(KEY_SIZE)
        mac_key = os.urandom(MAC_KEY_SIZE)
        iv = os.urandom(IV_SIZE)

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext) + padder.finalize()

        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        iv_and_ciphertext = iv + ciphertext
        mac = _mac(mac_key, iv_and_ciphertext)
        digest = hashlib.sha256(plaintext).digest()

        return EncryptedContent(
            envelope=mac + iv_and_ciphertext,
            plaintext_size=len(plaintext),
            info=FileEncryptionInfo(
                encryption_key=_b64(key),
                mac_key=_b64(mac_key),
                initialization_vector=_b64(iv),
                mac=_b64(mac),
                file_digest=_b64(digest),
            ),
        )

    def encrypt_file(self, path: Union[str, Path]) -> EncryptedContent:
        """读取整个文件并加密

        Raises:
            EncryptionError: 文件读取失败
        """
        path = Path(path)
        info(f"加密 {path.name}", stage=LogStage.ENCRYPT)
        try:
            plaintext = path.read_bytes()
        except OSError as e:
            raise EncryptionError(f"读取待加密文件失败 {path}: {e}") from e

        content = self.encrypt_bytes(plaintext)
        debug(
            f"明文 {format_size(content.plaintext_size)} -> 封包 {format_size(content.encrypted_size)}",
            stage=LogStage.ENCRYPT,
        )
        return content


def decrypt_envelope(envelope: bytes, encryption_info: FileEncryptionInfo) -> bytes:
    """校验 MAC 并解密封包，返回明文

    Raises:
        EncryptionError: 封包过短、MAC 或 IV 不符、摘要不符或填充错误
    """
    if len(envelope) < MAC_SIZE + IV_SIZE + 16:
        raise EncryptionError("封包长度不足")

    key = base64.b64decode(encryption_info.encryption_key)
    mac_key = base64.b64decode(encryption_info.mac_key)
    expected_iv = base64.b64decode(encryption_info.initialization_vector)

    mac, body = envelope[:MAC_SIZE], envelope[MAC_SIZE:]
    iv, ciphertext = body[:IV_SIZE], body[IV_SIZE:]

    if not hmac.compare_digest(mac, _mac(mac_key, body)):
        raise EncryptionError("MAC 校验失败")
    if not hmac.compare_digest(mac, base64.b64decode(encryption_info.mac)):
        raise EncryptionError("封包 MAC 与描述不一致")
    if iv != expected_iv:
        raise EncryptionError("封包 IV 与描述不一致")

    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    try:
        plaintext = unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise EncryptionError(f"填充无效: {e}") from e

    if _b64(hashlib.sha256(plaintext).digest()) != encryption_info.file_digest:
        raise EncryptionError("明文摘要不符")

    return plaintext
