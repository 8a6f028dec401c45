"""
LaunchFetch 存储层

按摘要寻址的本地内容缓存与流式摘要校验。
"""

from launchfetch.storage.verifier import DigestHasher, FileVerifier
from launchfetch.storage.content_store import ContentStore, TEMP_SUFFIX

__all__ = [
    "ContentStore",
    "DigestHasher",
    "FileVerifier",
    "TEMP_SUFFIX",
]
