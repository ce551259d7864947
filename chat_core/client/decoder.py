import codecs


class StreamDecoder:
    """增量 UTF-8 解码器。

    分块边界可能落在多字节字符中间，未完成的字节序列会留到下一次 feed 再输出，
    因此逐块解码后拼接的结果与一次性解码全部字节完全一致。
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")

    def feed(self, data: bytes) -> str:
        return self._decoder.decode(data, final=False)

    def finish(self) -> str:
        """流结束时调用，输出残留字节（不完整的序列替换为 U+FFFD）。"""
        return self._decoder.decode(b"", final=True)
