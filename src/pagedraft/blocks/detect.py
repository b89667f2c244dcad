"""Block template detection.

Maps a block to one of the site's known templates plus a short summary
used as its label in the editor's block list.
"""

from __future__ import annotations

from pagedraft.html.tree import Node, first_element, has_class, iter_elements, single_element, text_content
from pagedraft.models import BlockInfo

_HEADINGS = ("h1", "h2", "h3")
_SUMMARY_CHARS = 60


def _heading_text(node: Node) -> str:
    heading = first_element(node, _HEADINGS)
    return text_content(heading).strip() if heading is not None else ""


def _detect_section(node: Node) -> BlockInfo:
    section_type = node.attrs.get("data-type", "").strip()
    heading = _heading_text(node)
    if section_type == "twoCol":
        return BlockInfo(type="two-col", summary=heading or "Two column")
    if section_type == "split50":
        pos = node.attrs.get("data-img-pos") or "left"
        return BlockInfo(type="50-50-split", summary=f"{heading or 'Split'} (img {pos})")
    if section_type == "imgText":
        pos = node.attrs.get("data-img-pos") or "left"
        return BlockInfo(type="small-img-lrg-txt", summary=f"{heading or 'ImgText'} (img {pos})")
    return BlockInfo(
        type=f"section:{section_type or 'unknown'}",
        summary=heading or "Section",
    )


def detect_block(html_or_node: str | Node) -> BlockInfo:
    """Return the template type and summary of a block.

    Recognisers run in order; the first match wins.  Anything unrecognised
    is typed by its tag name and summarised by its leading text.
    """
    node = single_element(html_or_node) if isinstance(html_or_node, str) else html_or_node
    if node is None:
        return BlockInfo(type="unknown", summary="Block")

    if has_class(node, "img-stub") and node.attrs.get("data-img"):
        return BlockInfo(
            type="inline-polaroid",
            summary=node.attrs.get("data-caption") or node.attrs["data-img"],
        )

    if has_class(node, "section"):
        return _detect_section(node)

    if has_class(node, "div-wrapper"):
        return BlockInfo(type="std-container", summary=_heading_text(node) or "Container")

    if has_class(node, "img-text-div-img"):
        img = first_element(node, ("img",))
        src = img.attrs.get("src", "") if img is not None else ""
        return BlockInfo(type="std-image", summary=src or "Image")

    if has_class(node, "grid-wrapper"):
        count = sum(1 for el in iter_elements(node) if el.tag == "img")
        return BlockInfo(type="grid-wrapper", summary=f"Grid ({count} imgs)")

    summary = text_content(node).strip()[:_SUMMARY_CHARS]
    return BlockInfo(type=node.tag, summary=summary or "Block")
