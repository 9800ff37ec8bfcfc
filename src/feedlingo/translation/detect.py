"""基于字符区段的语言识别（引擎识别失败时的兜底）."""

# (起始码位, 结束码位, 语言代码)，按优先级排列
_SCRIPT_RANGES: list[tuple[int, int, str]] = [
    (0x3040, 0x30FF, "ja"),  # 平假名、片假名
    (0xAC00, 0xD7AF, "ko"),  # 韩文音节
    (0x1100, 0x11FF, "ko"),  # 韩文字母
    (0x4E00, 0x9FFF, "zh"),  # CJK 统一表意文字
    (0x3400, 0x4DBF, "zh"),
    (0x0400, 0x04FF, "ru"),  # 西里尔字母
    (0x0600, 0x06FF, "ar"),  # 阿拉伯字母
    (0x0E00, 0x0E7F, "th"),  # 泰文
    (0x0900, 0x097F, "hi"),  # 天城文
]

# 命中字符占字母类字符的最低比例
_MIN_RATIO = 0.1


def detect_language(text: str, default: str = "en") -> str:
    """
    按 Unicode 字符区段猜测语言.

    日文通常混有汉字，因此只要出现假名即判定为日文。

    Args:
        text: 待识别文本
        default: 无法判断时返回的语言代码

    Returns:
        ISO 639-1 语言代码
    """
    counts: dict[str, int] = {}
    letters = 0

    for char in text[:2000]:
        if not char.isalpha():
            continue
        letters += 1
        code = ord(char)
        for start, end, lang in _SCRIPT_RANGES:
            if start <= code <= end:
                counts[lang] = counts.get(lang, 0) + 1
                break

    if not letters or not counts:
        return default

    if counts.get("ja"):
        return "ja"

    lang, hits = max(counts.items(), key=lambda item: item[1])
    if hits / letters < _MIN_RATIO:
        return default
    return lang
