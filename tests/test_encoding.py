import codecs

import pytest

from feednorm import (
    DecodeError,
    EmptyDocumentBody,
    MalformedProlog,
    MissingPrologEnd,
    UnknownEncoding,
    decode_feed,
)
from feednorm.prepare import (
    CANONICAL_PROLOG,
    ensure_utf8_xml_declaration,
    normalize_encoding,
    prepare_xml_bytes,
    rewrite_prolog,
    sanitize_xml_chars,
)


def test_parse_str_with_non_utf8_xml_declaration():
    xml = (
        '<?xml version="1.0" encoding="iso-8859-1"?>'
        '<rss version="2.0">'
        "<channel>"
        "<title>café</title>"
        "<item><title>café</title></item>"
        "</channel>"
        "</rss>"
    )
    feed = decode_feed(xml)
    assert feed.title == "café"
    assert feed.items[0].title == "café"


def test_parse_bytes_with_non_utf8_encoding():
    xml_bytes = (
        b'<?xml version="1.0" encoding="iso-8859-1"?>'
        b'<rss version="2.0">'
        b"<channel>"
        b"<title>caf\xe9</title>"
        b"<item><title>caf\xe9</title></item>"
        b"</channel>"
        b"</rss>"
    )
    feed = decode_feed(xml_bytes)
    assert feed.title == "café"
    assert feed.items[0].title == "café"


def test_rdf_in_latin1_is_decoded_to_unicode_text():
    xml_bytes = (
        b'<?xml version="1.0" encoding="ISO-8859-1"?>\n'
        b'<rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#"'
        b' xmlns="http://purl.org/rss/1.0/"'
        b' xmlns:dc="http://purl.org/dc/elements/1.1/">'
        b"<channel>"
        b"<title>Caf\xe9 cr\xe8me</title>"
        b"<link>https://example.com/</link>"
        b"<description>Na\xefve \xbd price</description>"
        b"<dc:date>2017-01-17T21:30:14+00:00</dc:date>"
        b"</channel>"
        b"<item><title>\xc9t\xe9</title><link>https://example.com/1</link></item>"
        b"</rdf:RDF>"
    )
    feed = decode_feed(xml_bytes)
    assert feed.dialect == "RDF"
    assert feed.title == "Café crème"
    assert feed.description == "Naïve ½ price"
    assert feed.items[0].title == "Été"


def test_ensure_utf8_xml_declaration_rewrites_encoding():
    xml = "<?xml version='1.0' encoding='windows-1252'?><rss/>"
    assert ensure_utf8_xml_declaration(xml) == "<?xml version='1.0' encoding='utf-8'?><rss/>"


def test_ensure_utf8_xml_declaration_leaves_undeclared_text_alone():
    assert ensure_utf8_xml_declaration("<rss/>") == "<rss/>"


def test_normalize_encoding_defaults_to_utf8():
    content = '<?xml version="1.0"?><rss>é</rss>'.encode("utf-8")
    buffer, encoding = normalize_encoding(content)
    assert encoding == "utf-8"
    assert buffer == content


def test_normalize_encoding_accepts_single_quotes_and_standalone():
    content = b"<?xml version='1.0' encoding='UTF-8' standalone='yes' ?><rss/>"
    buffer, encoding = normalize_encoding(content)
    assert encoding == "utf-8"
    assert buffer == content


@pytest.mark.parametrize(
    "declared, expected",
    [
        ("ISO-8859-1", "iso8859-1"),
        ("latin1", "iso8859-1"),
        ("UTF8", "utf-8"),
        ("Windows-1252", "cp1252"),
    ],
)
def test_normalize_encoding_resolves_aliases(declared, expected):
    content = f'<?xml version="1.0" encoding="{declared}"?><rss/>'.encode("ascii")
    _, encoding = normalize_encoding(content)
    assert encoding == expected


def test_normalize_encoding_transcodes_to_utf8():
    content = b'<?xml version="1.0" encoding="ISO-8859-1"?><t>caf\xe9</t>'
    buffer, encoding = normalize_encoding(content)
    assert encoding == "iso8859-1"
    assert buffer == b'<?xml version="1.0" encoding="ISO-8859-1"?><t>caf\xc3\xa9</t>'


def test_normalize_encoding_skips_bom_and_leading_whitespace():
    content = b'\xef\xbb\xbf\n  <?xml version="1.0" encoding="utf-8"?><rss/>'
    buffer, _ = normalize_encoding(content)
    assert buffer == b'<?xml version="1.0" encoding="utf-8"?><rss/>'


def test_normalize_encoding_treats_single_byte_utf16_as_utf8():
    content = b'<?xml version="1.0" encoding="UTF-16"?><rss>plain</rss>'
    buffer, encoding = normalize_encoding(content)
    assert encoding == "utf-16"
    assert buffer == content


@pytest.mark.parametrize(
    "content",
    [
        b"<rss version='2.0'><channel/></rss>",
        b"",
        b'<?xml encoding="utf-8"?><rss/>',
        b'<?xml version="1.1" encoding="utf-8"?><rss/>',
        b'<?xml version="1.0" encoding=""?><rss/>',
        b'<?xml version="1.0" encoding="utf-8"<rss/>',
    ],
)
def test_malformed_prolog(content):
    with pytest.raises(MalformedProlog):
        normalize_encoding(content)


def test_unknown_encoding_carries_name():
    with pytest.raises(UnknownEncoding) as excinfo:
        normalize_encoding(b'<?xml version="1.0" encoding="klingon-8"?><rss/>')
    assert excinfo.value.encoding == "klingon-8"


def test_binary_codec_is_unknown_encoding():
    with pytest.raises(UnknownEncoding):
        normalize_encoding(b'<?xml version="1.0" encoding="base64"?><rss/>')


def test_invalid_bytes_for_declared_encoding():
    with pytest.raises(DecodeError) as excinfo:
        normalize_encoding(b'<?xml version="1.0" encoding="ascii"?><t>\xff</t>')
    assert excinfo.value.encoding == "ascii"
    assert excinfo.value.reason


def test_decode_feed_surfaces_prolog_errors():
    with pytest.raises(MalformedProlog):
        decode_feed(b"<rss version='2.0'><channel/></rss>")
    with pytest.raises(UnknownEncoding):
        decode_feed(b'<?xml version="1.0" encoding="nope"?><rss/>')


def test_sanitize_removes_vertical_tab():
    assert sanitize_xml_chars(b"a\x0bb") == b"ab"


def test_sanitize_keeps_allowed_whitespace_and_astral_chars():
    content = "a\tb\nc\rd \U0001F600 \ufffd".encode("utf-8")
    assert sanitize_xml_chars(content) == content


def test_sanitize_drops_control_chars_and_invalid_utf8():
    content = b"<t>x\x00y\x1f\xffz\xef\xbf\xbe</t>"
    assert sanitize_xml_chars(content) == b"<t>xyz</t>"


def test_sanitized_title_decodes():
    xml_bytes = (
        b'<?xml version="1.0" encoding="utf-8"?>'
        b"<rss><channel><title>Bad\x0bTitle</title></channel></rss>"
    )
    assert decode_feed(xml_bytes).title == "BadTitle"


def test_rewrite_prolog_replaces_declaration():
    content = b"<?xml version='1.0' encoding='ISO-8859-1' ?>\n<rss/>"
    assert rewrite_prolog(content) == CANONICAL_PROLOG + b"\n<rss/>"


def test_rewrite_prolog_without_terminator():
    with pytest.raises(MissingPrologEnd):
        rewrite_prolog(b'<?xml version="1.0" encoding="latin1"')


def test_rewrite_prolog_with_empty_body():
    with pytest.raises(EmptyDocumentBody):
        rewrite_prolog(b'<?xml version="1.0" encoding="latin1"?>')


def test_decode_feed_with_prolog_only():
    with pytest.raises(EmptyDocumentBody):
        decode_feed(b'<?xml version="1.0" encoding="ISO-8859-1"?>')


def test_prepare_xml_bytes_only_rewrites_non_utf8():
    utf8 = b'<?xml version="1.0" encoding="utf-8"?><rss/>'
    assert prepare_xml_bytes(utf8) == utf8

    latin1 = b'<?xml version="1.0" encoding="latin1"?><rss>\xe9</rss>'
    assert prepare_xml_bytes(latin1) == CANONICAL_PROLOG + b"<rss>\xc3\xa9</rss>"


WIDE_FEED = (
    '<?xml version="1.0" encoding="{encoding}"?>'
    '<rss version="2.0"><channel><title>Ünïcode ☃</title>'
    "<item><title>one</title></item></channel></rss>"
)


@pytest.mark.parametrize("encoding", ["UTF-16", "UTF-16LE", "UTF-16BE", "UTF-32"])
def test_decode_wide_unicode_feed(encoding):
    feed = decode_feed(WIDE_FEED.format(encoding=encoding).encode(encoding))
    assert feed.title == "Ünïcode ☃"
    assert [item.title for item in feed.items] == ["one"]


def test_normalize_encoding_transcodes_utf16_with_bom():
    content = '<?xml version="1.0" encoding="UTF-16"?><t>é</t>'.encode("utf-16")
    buffer, encoding = normalize_encoding(content)
    assert encoding == "utf-16"
    assert buffer == '<?xml version="1.0" encoding="UTF-16"?><t>é</t>'.encode("utf-8")
    assert prepare_xml_bytes(content) == CANONICAL_PROLOG + "<t>é</t>".encode("utf-8")


def test_invalid_utf16_is_a_decode_error():
    content = (
        codecs.BOM_UTF16_LE
        + '<?xml version="1.0"?><t>'.encode("utf-16-le")
        + b"\x00\xd8"
        + "</t>".encode("utf-16-le")
    )
    with pytest.raises(DecodeError) as excinfo:
        normalize_encoding(content)
    assert excinfo.value.encoding == "utf-16-le"


def test_str_with_lone_surrogate_is_a_decode_error():
    with pytest.raises(DecodeError):
        decode_feed('<?xml version="1.0"?><rss><channel><title>\ud800</title></channel></rss>')


@pytest.mark.parametrize("alias", ["u8", "utf_8", "UTF8"])
def test_utf8_aliases_are_rewritten_for_the_parser(alias):
    content = f'<?xml version="1.0" encoding="{alias}"?><rss><channel><title>x</title></channel></rss>'
    assert prepare_xml_bytes(content.encode("ascii")) == (
        CANONICAL_PROLOG + b"<rss><channel><title>x</title></channel></rss>"
    )
    assert decode_feed(content.encode("ascii")).title == "x"


def test_literal_utf8_declaration_is_kept():
    content = b'<?xml version="1.0" encoding="UTF-8"?><rss/>'
    assert prepare_xml_bytes(content) == content
