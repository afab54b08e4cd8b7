"""
代码提取

从 LLM 输出中取出第一个 ``` 围栏代码块的内容。

规则：
- 逐行扫描，去掉首尾空白后以 ``` 开头的行是围栏（可带语言标记）
- 围栏切换"块内"状态，两个围栏之间的行属于代码块
- 最后一个代码块未闭合时，一直取到文本末尾
- 返回第一个代码块去掉首尾空白后的内容；没有代码块时原样返回
"""

FENCE = "```"


def extract_code_blocks(content: str) -> list[str]:
    """按出现顺序返回全部代码块（未去空白）"""
    blocks: list[str] = []
    current: list[str] = []
    inside = False

    for line in content.split("\n"):
        if line.strip().startswith(FENCE):
            if inside:
                blocks.append("\n".join(current))
                current = []
            inside = not inside
            continue
        if inside:
            current.append(line)

    if inside:
        blocks.append("\n".join(current))

    return blocks


def extract_code(content: str) -> str:
    """提取第一个代码块；没有代码块时返回原始内容"""
    blocks = extract_code_blocks(content)
    if not blocks:
        return content
    return blocks[0].strip()
