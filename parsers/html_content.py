"""
HTML Content Parser

Parses raw document text into an lxml tree and exposes XPath-scoped
element access plus typed, pre-processable value extraction. Queries are
static: nothing on the page is executed.
"""

import logging
import math
import re
from typing import Callable, List, Optional, Tuple, Union

from lxml import etree, html

from errors import (
    AmbiguousMatchError,
    ContentParseError,
    ExtractionError,
    PreprocessError,
    ValueCoercionError,
    XPathQueryError,
)
from models import ExtractedValue, ValueType

logger = logging.getLogger(__name__)

# Fallible text transformation, raises ExtractionError to reject a value
Preprocess = Callable[[str], str]

# Extracted ints are bounded to a signed 32-bit range
INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1

_INT_PATTERN = re.compile(r'[+-]?[0-9]+')

# Element nodes or the string/number results of XPath functions and text()/@attr steps
Node = Union[etree._Element, str, float, bool]


def parse_int(value: str) -> int:
    """Parse a base-10 integer that fits a signed 32-bit range"""
    if not _INT_PATTERN.fullmatch(value):
        raise ValueCoercionError(f"failed to parse '{value}' as int")

    parsed = int(value)
    if parsed > INT32_MAX or parsed < INT32_MIN:
        raise ValueCoercionError(f"the target integer value {value} is overflowing")
    return parsed


def parse_float(value: str) -> float:
    """Parse a finite float, surrounding whitespace is not accepted"""
    if not value or value != value.strip() or '_' in value:
        raise ValueCoercionError(f"failed to parse '{value}' as float")

    try:
        parsed = float(value)
    except ValueError as e:
        raise ValueCoercionError(f"failed to parse '{value}' as float") from e

    if not math.isfinite(parsed):
        raise ValueCoercionError(f"the target float value {value} is not a finite number")
    return parsed


def coerce(value: str, value_type: ValueType) -> ExtractedValue:
    """Convert extracted text to the configured value type"""
    if value_type == ValueType.STRING:
        return value
    if value_type == ValueType.INT:
        return parse_int(value)
    if value_type == ValueType.FLOAT:
        return parse_float(value)
    raise ValueCoercionError(f"invalid value type specified: {value_type}")


class HtmlContentElement:
    """Single node selected from an HtmlContent document"""

    def __init__(self, node: Node):
        if node is None:
            raise ExtractionError("element node is nil")
        self.node = node

    @property
    def is_element(self) -> bool:
        return isinstance(self.node, etree._Element)

    def inner_text(self, preprocess: Optional[Preprocess] = None) -> str:
        """Text content of the node, passed through ``preprocess`` when given"""
        if self.is_element:
            text_content = getattr(self.node, 'text_content', None)
            value = text_content() if text_content else (self.node.text or '')
        elif isinstance(self.node, bool):
            value = 'true' if self.node else 'false'
        elif isinstance(self.node, float):
            value = str(int(self.node)) if self.node.is_integer() else repr(self.node)
        else:
            value = str(self.node)

        return self._apply(value, preprocess, 'inner text')

    def attribute(self, name: str, preprocess: Optional[Preprocess] = None) -> str:
        """Attribute value of the node, empty when absent"""
        if not name:
            raise ExtractionError("invalid attribute name provided")
        if not self.is_element:
            raise ExtractionError(f"attribute {name} requested on a non-element xpath result")

        return self._apply(self.node.get(name, ''), preprocess, 'attribute')

    def inner_text_string(self, preprocess: Optional[Preprocess] = None) -> str:
        return self.inner_text(preprocess)

    def inner_text_int(self, preprocess: Optional[Preprocess] = None) -> int:
        return parse_int(self.inner_text(preprocess))

    def inner_text_float(self, preprocess: Optional[Preprocess] = None) -> float:
        return parse_float(self.inner_text(preprocess))

    def inner_text_as(self, value_type: ValueType,
                      preprocess: Optional[Preprocess] = None) -> ExtractedValue:
        return coerce(self.inner_text(preprocess), value_type)

    def attribute_string(self, name: str, preprocess: Optional[Preprocess] = None) -> str:
        return self.attribute(name, preprocess)

    def attribute_int(self, name: str, preprocess: Optional[Preprocess] = None) -> int:
        return parse_int(self.attribute(name, preprocess))

    def attribute_float(self, name: str, preprocess: Optional[Preprocess] = None) -> float:
        return parse_float(self.attribute(name, preprocess))

    @staticmethod
    def _apply(value: str, preprocess: Optional[Preprocess], what: str) -> str:
        if preprocess is None:
            return value

        try:
            result = preprocess(value)
        except ExtractionError:
            raise
        except Exception as e:
            raise PreprocessError(f"{what} value preprocessing failed: {e!r}") from e

        if not isinstance(result, str):
            raise PreprocessError(
                f"{what} value preprocessing returned {type(result).__name__} instead of str"
            )
        return result

    def __repr__(self) -> str:
        if self.is_element:
            return f"HtmlContentElement(<{self.node.tag}>)"
        return f"HtmlContentElement({self.node!r})"


class HtmlContent:
    """Parsed HTML document queryable with XPath"""

    def __init__(self, document: etree._Element):
        self.document = document

    @classmethod
    def parse(cls, text: str) -> 'HtmlContent':
        """
        Parse raw document text

        Raises:
            ContentParseError: empty input or unparsable markup
        """
        if not text or not text.strip():
            raise ContentParseError("invalid empty html source provided")

        try:
            document = html.document_fromstring(text)
        except ValueError:
            # str input with an encoding declaration, let lxml read the bytes
            try:
                document = html.document_fromstring(text.encode('utf-8'))
            except (etree.ParserError, ValueError) as e:
                raise ContentParseError(f"failed to parse the html content: {e}") from e
        except etree.ParserError as e:
            raise ContentParseError(f"failed to parse the html content: {e}") from e

        return cls(document)

    def _query(self, xpath: str) -> List[Node]:
        try:
            result = self.document.xpath(xpath)
        except etree.XPathError as e:
            raise XPathQueryError(f"failed to query for nodes via '{xpath}': {e}") from e

        if isinstance(result, list):
            return result
        # scalar results of functions such as string() or count()
        if isinstance(result, str) and not result:
            return []
        return [result]

    def get_first(self, xpath: str) -> Tuple[Optional[HtmlContentElement], bool]:
        """First matching node, ``(None, False)`` when nothing matches"""
        nodes = self._query(xpath)
        if not nodes:
            return None, False
        return HtmlContentElement(nodes[0]), True

    def get_single(self, xpath: str) -> Tuple[Optional[HtmlContentElement], bool]:
        """
        The only matching node

        Raises:
            AmbiguousMatchError: more than one node matched
        """
        nodes = self._query(xpath)
        if not nodes:
            return None, False
        if len(nodes) > 1:
            raise AmbiguousMatchError(
                f"multiple matching nodes found for '{xpath}': {len(nodes)}", matches=len(nodes)
            )
        return HtmlContentElement(nodes[0]), True

    def get_all(self, xpath: str) -> List[HtmlContentElement]:
        return [HtmlContentElement(node) for node in self._query(xpath)]

    def get_raw_content(self) -> str:
        """Serialized document"""
        return etree.tostring(self.document, method='html', encoding='unicode')
