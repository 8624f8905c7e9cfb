"""Converters between Markdown and Apple Notes HTML format."""

import re

import markdown
from bs4 import BeautifulSoup, NavigableString
from bs4.element import Comment


def markdown_to_html(md_content: str) -> str:
    """Convert Markdown to Apple Notes compatible HTML.

    Apple Notes uses a restricted HTML subset:
    - div for paragraphs
    - br for line breaks
    - Inline styles only (no classes)
    - Limited elements: b, i, u, strike, a, ul, ol, li
    """
    # Convert Markdown to HTML
    html = markdown.markdown(
        md_content,
        extensions=["extra", "nl2br"],
    )

    # Parse and clean for Apple Notes compatibility
    soup = BeautifulSoup(html, "html.parser")

    # Convert <p> tags to <div> (Apple Notes preference)
    for p in soup.find_all("p"):
        p.name = "div"

    # Convert <strong> to <b> and <em> to <i>
    for strong in soup.find_all("strong"):
        strong.name = "b"
    for em in soup.find_all("em"):
        em.name = "i"

    return str(soup)


def html_to_markdown(html_content: str) -> str:
    """Convert Apple Notes HTML to Markdown.

    Block elements become paragraphs, headings keep their level, lists are
    indented by nesting depth and images are kept as inline links (embedded
    ``data:`` images stay embedded).
    """
    soup = BeautifulSoup(html_content or "", "html.parser")

    blocks = _convert_blocks(soup, depth=0)
    text = "\n\n".join(block for block in blocks if block.strip())
    return re.sub(r"\n{3,}", "\n\n", text).strip() + "\n"


def _convert_blocks(element, depth: int) -> list[str]:
    """Convert the children of a container into Markdown blocks."""
    blocks = []
    inline = ""

    for child in element.children:
        if isinstance(child, Comment):
            continue
        if child.name in ("ul", "ol"):
            blocks.append(inline)
            inline = ""
            blocks.append(_convert_list(child, depth))
        elif child.name and re.fullmatch(r"h[1-6]", child.name):
            blocks.append(inline)
            inline = ""
            level = int(child.name[1])
            blocks.append(f"{'#' * level} {_convert_element(child).strip()}")
        elif child.name in ("div", "p", "blockquote", "pre", "table", "object"):
            blocks.append(inline)
            inline = ""
            if child.name == "pre":
                blocks.append(f"```\n{child.get_text()}\n```")
            elif child.name == "blockquote":
                quoted = "\n".join(f"> {line}" for line in _convert_element(child).splitlines())
                blocks.append(quoted)
            elif child.name in ("table", "object"):
                blocks.append(_convert_table(child))
            elif child.find(["div", "p", "ul", "ol", "table", "h1", "h2", "h3", "h4", "h5", "h6"]):
                blocks.extend(_convert_blocks(child, depth))
            else:
                blocks.append(_convert_element(child).strip())
        elif child.name in ("head", "script", "style", "title"):
            continue
        else:
            inline += _convert_node(child)

    blocks.append(inline)
    return blocks


def _convert_element(element) -> str:
    """Convert an HTML element to Markdown text."""
    if element.name is None:
        return _convert_node(element)
    return "".join(_convert_node(child) for child in element.children)


def _convert_node(node) -> str:
    """Convert a single inline node to Markdown text."""
    if isinstance(node, Comment):
        return ""
    if isinstance(node, NavigableString):
        return re.sub(r"\s+", " ", str(node))
    if node.name in ("b", "strong"):
        return _wrap(_convert_element(node), "**")
    if node.name in ("i", "em"):
        return _wrap(_convert_element(node), "*")
    if node.name == "u":
        return _convert_element(node)  # Markdown doesn't have underline
    if node.name in ("strike", "s", "del"):
        return _wrap(_convert_element(node), "~~")
    if node.name in ("code", "tt"):
        return f"`{node.get_text()}`"
    if node.name == "a":
        href = node.get("href", "")
        return f"[{_convert_element(node).strip()}]({href})"
    if node.name == "img":
        return f"![{node.get('alt', '')}]({node.get('src', '')})"
    if node.name == "br":
        return "  \n"
    if node.name in ("div", "p"):
        return "\n" + _convert_element(node)
    return _convert_element(node)


def _wrap(text: str, marker: str) -> str:
    """Wrap text in an emphasis marker, keeping surrounding spaces outside."""
    stripped = text.strip()
    if not stripped:
        return text
    leading = text[: len(text) - len(text.lstrip())]
    trailing = text[len(text.rstrip()):]
    return f"{leading}{marker}{stripped}{marker}{trailing}"


def _convert_list(element, depth: int = 0) -> str:
    """Convert ul/ol to Markdown list."""
    lines = []
    is_ordered = element.name == "ol"
    indent = "    " * depth

    for i, li in enumerate(element.find_all("li", recursive=False), 1):
        prefix = f"{i}. " if is_ordered else "- "
        own = ""
        nested = []
        for child in li.children:
            if getattr(child, "name", None) in ("ul", "ol"):
                nested.append(_convert_list(child, depth + 1))
            else:
                own += _convert_node(child)
        lines.append(f"{indent}{prefix}{own.strip()}")
        lines.extend(nested)

    return "\n".join(lines)


def _convert_table(element) -> str:
    """Convert a table to a pipe table, first row as header."""
    rows = []
    for tr in element.find_all("tr"):
        cells = [
            _convert_element(cell).strip().replace("|", "\\|")
            for cell in tr.find_all(["td", "th"], recursive=False)
        ]
        rows.append(cells)
    if not rows:
        return ""

    width = max(len(row) for row in rows)
    rows = [row + [""] * (width - len(row)) for row in rows]
    lines = ["| " + " | ".join(rows[0]) + " |", "| " + " | ".join(["---"] * width) + " |"]
    lines.extend("| " + " | ".join(row) + " |" for row in rows[1:])
    return "\n".join(lines)
