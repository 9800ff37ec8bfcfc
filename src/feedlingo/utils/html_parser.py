"""HTML 解析与内容清洗工具."""

import re

from bs4 import BeautifulSoup

# 需要整体移除的标签
_STRIP_TAGS = ["script", "style", "noscript", "iframe"]


def clean_text(text: str | None) -> str:
    """合并连续空白为单个空格并去除首尾空白."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip()


def clean_html(html: str | None) -> str:
    """
    将 HTML 转换为清洗后的纯文本.

    移除 script/style 等标签，去除所有标记，并合并空白。

    Args:
        html: HTML 内容

    Returns:
        单行纯文本
    """
    if not html:
        return ""

    # 纯文本无需解析
    if "<" not in html:
        return clean_text(html)

    soup = BeautifulSoup(html, "lxml")
    for element in soup(_STRIP_TAGS):
        element.decompose()

    return clean_text(soup.get_text(separator=" "))


def html_to_text(html: str | None) -> str:
    """
    将 HTML 转换为保留段落的纯文本.

    Args:
        html: HTML 内容

    Returns:
        提取的纯文本内容，段落之间以换行分隔
    """
    if not html:
        return ""

    soup = BeautifulSoup(html, "lxml")

    for element in soup([*_STRIP_TAGS, "nav", "footer", "header"]):
        element.decompose()

    text = soup.get_text(separator="\n")

    # 逐行合并空白，丢弃空行
    lines = [clean_text(line) for line in text.split("\n")]
    text = "\n".join(line for line in lines if line)

    return text.strip()


def select_block(html: str, selector: str) -> str | None:
    """
    用 CSS 选择器提取正文块.

    Args:
        html: 页面 HTML
        selector: CSS 选择器，可用逗号分隔多个候选

    Returns:
        第一个匹配且非空的块的纯文本，未匹配时返回 None

    Raises:
        SelectorSyntaxError: 选择器语法错误
    """
    if not html or not selector:
        return None

    soup = BeautifulSoup(html, "lxml")
    for element in soup.select(selector):
        text = html_to_text(str(element))
        if text:
            return text

    return None
