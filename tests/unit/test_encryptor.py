"""
内容加密单元测试

验证封包格式：HMAC-SHA256(iv || ct) || iv || ct，AES-256-CBC + PKCS7。
"""

import base64
import hashlib
import hmac

import pytest

from intunepkg.upload.encryptor import (
    IV_SIZE,
    MAC_SIZE,
    ContentEncryptor,
    EncryptionError,
    FileEncryptionInfo,
    decrypt_envelope,
)


def b64d(value: str) -> bytes:
    return base64.b64decode(value)


class TestContentEncryptor:
    """ContentEncryptor 测试"""

    @pytest.mark.parametrize("size", [0, 1, 15, 16, 17, 3 * 1024 * 1024 + 5])
    def test_round_trip(self, size):
        """测试各种长度（含空、整块边界、多 MB）都能还原"""
        plaintext = bytes(i % 251 for i in range(size))
        content = ContentEncryptor().encrypt_bytes(plaintext)

        assert decrypt_envelope(content.envelope, content.info) == plaintext

    @pytest.mark.parametrize("size", [0, 1, 16, 100])
    def test_envelope_length(self, size):
        """测试封包长度 = MAC + IV + 填充后的密文"""
        content = ContentEncryptor().encrypt_bytes(b"a" * size)

        padded = (size // 16 + 1) * 16
        assert content.encrypted_size == MAC_SIZE + IV_SIZE + padded
        assert content.plaintext_size == size

    def test_envelope_layout(self):
        """测试 MAC 覆盖 iv || ct，且与描述一致"""
        content = ContentEncryptor().encrypt_bytes(b"hello intune")
        info = content.info

        mac = content.envelope[:MAC_SIZE]
        body = content.envelope[MAC_SIZE:]

        assert body[:IV_SIZE] == b64d(info.initialization_vector)
        assert mac == b64d(info.mac)
        assert mac == hmac.new(b64d(info.mac_key), body, hashlib.sha256).digest()

    def test_encryption_info_fields(self):
        """测试加密描述字段"""
        plaintext = b"payload"
        info = ContentEncryptor().encrypt_bytes(plaintext).info

        assert len(b64d(info.encryption_key)) == 32
        assert len(b64d(info.mac_key)) == 32
        assert len(b64d(info.initialization_vector)) == 16
        assert b64d(info.file_digest) == hashlib.sha256(plaintext).digest()
        assert info.profile_identifier == "ProfileVersion1"
        assert info.file_digest_algorithm == "SHA256"

    def test_keys_are_fresh(self):
        """测试每次加密使用新的密钥和 IV"""
        encryptor = ContentEncryptor()
        first = encryptor.encrypt_bytes(b"same").info
        second = encryptor.encrypt_bytes(b"same").info

        assert first.encryption_key != second.encryption_key
        assert first.initialization_vector != second.initialization_vector

    def test_to_graph(self):
        """测试 commit 请求体格式"""
        info = ContentEncryptor().encrypt_bytes(b"x").info
        body = info.to_graph()

        assert body["@odata.type"] == "#microsoft.graph.fileEncryptionInfo"
        assert set(body) == {
            "@odata.type", "encryptionKey", "macKey", "initializationVector",
            "profileIdentifier", "fileDigestAlgorithm", "fileDigest", "mac",
        }
        assert body["mac"] == info.mac

    def test_repr_hides_keys(self):
        """测试 repr 不输出密钥"""
        info = ContentEncryptor().encrypt_bytes(b"x").info
        assert info.encryption_key not in repr(info)

    def test_encrypt_file(self, tmp_path):
        """测试加密文件"""
        path = tmp_path / "app.pkg"
        path.write_bytes(b"\x00" * 1000)

        content = ContentEncryptor().encrypt_file(path)

        assert content.plaintext_size == 1000
        assert decrypt_envelope(content.envelope, content.info) == b"\x00" * 1000

    def test_encrypt_missing_file(self, tmp_path):
        """测试文件不存在"""
        with pytest.raises(EncryptionError):
            ContentEncryptor().encrypt_file(tmp_path / "missing.pkg")


class TestDecryptEnvelope:
    """decrypt_envelope 校验测试"""

    def test_tampered_ciphertext(self):
        """测试密文被篡改时 MAC 校验失败"""
        content = ContentEncryptor().encrypt_bytes(b"a" * 64)
        tampered = bytearray(content.envelope)
        tampered[-1] ^= 0x01

        with pytest.raises(EncryptionError, match="MAC"):
            decrypt_envelope(bytes(tampered), content.info)

    def test_mismatched_info(self):
        """测试封包与另一次加密的描述不匹配"""
        encryptor = ContentEncryptor()
        first = encryptor.encrypt_bytes(b"a")
        second = encryptor.encrypt_bytes(b"a")

        with pytest.raises(EncryptionError):
            decrypt_envelope(first.envelope, second.info)

    def test_wrong_digest(self):
        """测试摘要不符"""
        content = ContentEncryptor().encrypt_bytes(b"abc")
        info = content.info
        forged = FileEncryptionInfo(
            encryption_key=info.encryption_key,
            mac_key=info.mac_key,
            initialization_vector=info.initialization_vector,
            mac=info.mac,
            file_digest=base64.b64encode(hashlib.sha256(b"other").digest()).decode("ascii"),
        )

        with pytest.raises(EncryptionError, match="摘要"):
            decrypt_envelope(content.envelope, forged)

    def test_short_envelope(self):
        """测试封包过短"""
        info = ContentEncryptor().encrypt_bytes(b"").info
        with pytest.raises(EncryptionError):
            decrypt_envelope(b"\x00" * (MAC_SIZE + IV_SIZE), info)
