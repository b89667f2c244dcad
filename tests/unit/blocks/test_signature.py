"""Tests for blocks/signature.py.

A signature must survive everything the editing surface does to a block
without changing its content, and must change whenever content changes.
"""

from __future__ import annotations

import pytest

from pagedraft.blocks.signature import canonical_form, compute_signature
from pagedraft.config import PageDraftConfig
from pagedraft.html.tree import parse


def same(a: str, b: str, config: PageDraftConfig | None = None) -> bool:
    return compute_signature(a, config) == compute_signature(b, config)


class TestSignatureShape:
    def test_hex_digest(self):
        sig = compute_signature("<p>x</p>")
        assert len(sig) == 32
        assert all(c in "0123456789abcdef" for c in sig)

    def test_deterministic(self):
        assert compute_signature("<p>x</p>") == compute_signature("<p>x</p>")

    def test_accepts_parsed_node(self):
        node = parse("<p>x</p>").children[0]
        assert compute_signature(node) == compute_signature("<p>x</p>")

    def test_empty_block_has_signature(self):
        assert len(compute_signature("")) == 32


class TestSignatureInvariance:
    def test_attribute_order(self):
        assert same('<p class="a" id="x">t</p>', '<p id="x" class="a">t</p>')

    def test_class_token_order_and_duplicates(self):
        assert same('<p class="b a a">t</p>', '<p class="a b">t</p>')

    def test_identity_attribute_ignored(self):
        assert same('<p data-cms-id="b123-0">t</p>', "<p>t</p>")

    def test_custom_identity_attribute_ignored(self):
        config = PageDraftConfig(identity_attribute="data-block")
        assert same('<p data-block="x">t</p>', "<p>t</p>", config)
        assert not same('<p data-cms-id="x">t</p>', "<p>t</p>", config)

    def test_volatile_attributes_ignored(self):
        assert same('<div contenteditable="true" spellcheck="false">t</div>', "<div>t</div>")

    def test_whitespace_runs_collapse(self):
        assert same("<p>Hello   world</p>", "<p>Hello world</p>")
        assert same("<p>Hello\n\tworld</p>", "<p>Hello world</p>")

    def test_whitespace_between_block_children_dropped(self):
        assert same("<div>\n  <p>x</p>\n  <p>y</p>\n</div>", "<div><p>x</p><p>y</p></div>")

    def test_leading_and_trailing_whitespace_in_block_dropped(self):
        assert same("<p>  x  </p>", "<p>x</p>")

    def test_attribute_value_whitespace_stripped(self):
        assert same('<a href=" /x ">t</a>', '<a href="/x">t</a>')

    def test_style_normalized(self):
        assert same('<p style="color : red;  margin: 0 ;">t</p>', '<p style="color:red;margin:0">t</p>')

    def test_comments_ignored(self):
        assert same("<div><!-- note --><p>x</p></div>", "<div><p>x</p></div>")

    def test_ephemeral_class_dropped(self):
        assert same(
            '<div><p>x</p><div class="cms-preview">rendered</div></div>',
            "<div><p>x</p></div>",
        )

    def test_ephemeral_attribute_dropped(self):
        assert same(
            '<div><p>x</p><span data-cms-ephemeral="1">badge</span></div>',
            "<div><p>x</p></div>",
        )

    def test_highlight_decoration_unwrapped(self):
        highlighted = (
            '<pre><code class="hljs language-js">'
            '<span class="hljs-keyword">const</span> x = '
            '<span class="hljs-number">1</span></code></pre>'
        )
        plain = '<pre><code class="language-js">const x = 1</code></pre>'
        assert same(highlighted, plain)

    def test_bare_decoration_class_stripped(self):
        assert same('<code class="hljs">x</code>', "<code>x</code>")


class TestSignatureSensitivity:
    def test_text_change(self):
        assert not same("<p>Hello</p>", "<p>Hallo</p>")

    def test_tag_change(self):
        assert not same("<p>x</p>", "<div>x</div>")

    def test_attribute_value_change(self):
        assert not same('<img src="a.png">', '<img src="b.png">')

    def test_attribute_added(self):
        assert not same("<p>x</p>", '<p class="lead">x</p>')

    def test_preformatted_whitespace_kept(self):
        assert not same("<pre>a  b</pre>", "<pre>a b</pre>")

    def test_nbsp_is_not_collapsible_whitespace(self):
        assert not same("<p>a&nbsp;b</p>", "<p>a b</p>")

    def test_inline_whitespace_kept(self):
        assert not same("<p><b>a</b> <i>b</i></p>", "<p><b>a</b><i>b</i></p>")

    def test_child_order(self):
        assert not same("<ul><li>1</li><li>2</li></ul>", "<ul><li>2</li><li>1</li></ul>")


class TestCanonicalForm:
    def test_structure(self):
        form = canonical_form('<p class="b a">Hi <b>there</b></p>')
        assert form == [
            ["el", "p", [["class", "a b"]], ["Hi ", ["el", "b", [], ["there"]]]],
        ]

    def test_fragment_whitespace_trimmed(self):
        assert canonical_form("\n<hr>\n") == [["el", "hr", [], []]]

    @pytest.mark.parametrize("html", ['<div class="cms-ui">x</div>', '<p data-cms-ephemeral="">x</p>'])
    def test_ephemeral_root_is_empty(self, html):
        node = parse(html).children[0]
        assert canonical_form(node) == []
