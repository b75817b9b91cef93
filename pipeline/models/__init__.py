from .messages import (
    PipelineMessage,
    GitwebCrawlMessage,
    GitDownloadMessage,
    FilesizeMessage,
    PDependMessage,
    encode_message,
    decode_message,
)

__all__ = [
    "PipelineMessage",
    "GitwebCrawlMessage",
    "GitDownloadMessage",
    "FilesizeMessage",
    "PDependMessage",
    "encode_message",
    "decode_message",
]
