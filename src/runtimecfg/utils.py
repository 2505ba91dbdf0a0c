import hashlib


def file_md5(file_path: str) -> str:
    """Hex MD5 digest of a file's content. Raises OSError if unreadable."""
    digest = hashlib.md5()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()
