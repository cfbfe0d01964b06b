"""
FIT Record Decoder

Decodes the binary activity files written by cycling head units into ride
samples, without an external FIT SDK.

The format is a self-describing record stream:
- a file header (byte 0 = header length, byte 1 = protocol version)
- definition records, which declare the field layout and byte order used by
  a 4-bit local message slot
- data records, which are decoded with the layout currently defined for
  their slot

Only data records of the `record` message (global number 20) become samples.
"""

import logging
import re
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, List, Optional, Tuple, Union

from .records import Sample, RecordFields
from .sample_assembler import SampleAssembler

logger = logging.getLogger(__name__)


class FitDecodeError(ValueError):
    """Base class for files that cannot be decoded"""

    error_type = "decode_error"
    message = "FIT file could not be decoded"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail
        super().__init__(f"{self.message}: {detail}" if detail else self.message)


class InvalidFormatError(FitDecodeError):
    error_type = "invalid_format"
    message = "Invalid FIT file format"


class UnsupportedVersionError(FitDecodeError):
    error_type = "unsupported_version"
    message = "Unsupported FIT file version"


class CorruptedDataError(FitDecodeError):
    error_type = "corrupted_data"
    message = "FIT file data is corrupted"


class NoActivityDataError(FitDecodeError):
    error_type = "no_activity_data"
    message = "No activity data found in file"


class BaseType(IntEnum):
    """
    Wire types, identified by the base type code masked with 0x1F.

    The multi-byte types are written as 0x83-0x86 in files; the endian flag
    in bit 7 is dropped by the mask.
    """

    ENUM = 0x00
    SINT8 = 0x01
    UINT8 = 0x02
    SINT16 = 0x03
    UINT16 = 0x04
    SINT32 = 0x05
    UINT32 = 0x06
    STRING = 0x07


# (width in bytes, signed) for integer types wider than one byte
_WIDE_INTEGER_TYPES = {
    BaseType.SINT16: (2, True),
    BaseType.UINT16: (2, False),
    BaseType.SINT32: (4, True),
    BaseType.UINT32: (4, False),
}

_EDGE_CONTROL_CHARS = re.compile(r"^[\x00-\x1f\x7f-\x9f]+|[\x00-\x1f\x7f-\x9f]+$")


@dataclass(frozen=True)
class FieldLayout:
    """One field descriptor of a definition record"""

    field_number: int
    byte_size: int
    base_type_code: int


@dataclass(frozen=True)
class MessageLayout:
    """Layout of the data records for one local message slot"""

    global_message_number: int
    fields: Tuple[FieldLayout, ...]
    little_endian: bool

    @property
    def byteorder(self) -> str:
        return "little" if self.little_endian else "big"


class FitRecordDecoder:
    """Decodes a FIT byte buffer into an ordered list of samples"""

    MIN_FILE_LENGTH = 14
    MIN_HEADER_LENGTH = 12
    MAX_PROTOCOL_VERSION = 2

    DEFINITION_FLAG = 0x40
    LOCAL_MESSAGE_MASK = 0x0F
    LOCAL_MESSAGE_SLOTS = 16
    BASE_TYPE_MASK = 0x1F

    RECORD_MESSAGE_NUMBER = 20

    # reserved, architecture, global message number (2), field count
    DEFINITION_FIXED_LENGTH = 5
    FIELD_DESCRIPTOR_LENGTH = 3

    def __init__(self, carry_forward: bool = True):
        """
        Args:
            carry_forward: Passed to the SampleAssembler; keep the last known
                value of fields omitted from a record
        """
        self.carry_forward = carry_forward

    def decode(self, data: bytes) -> List[Sample]:
        """
        Decode a complete FIT file.

        Args:
            data: Raw file content

        Returns:
            Samples in file order

        Raises:
            InvalidFormatError: Buffer or header too short
            UnsupportedVersionError: Protocol version above 2
            CorruptedDataError: A record runs past the end of the buffer
            NoActivityDataError: No `record` samples were found
        """
        header_length = self._validate_header(data)

        # Layout table is local to this call, one slot per local message type
        layouts: List[Optional[MessageLayout]] = [None] * self.LOCAL_MESSAGE_SLOTS
        assembler = SampleAssembler(carry_forward=self.carry_forward)

        position = header_length
        definitions = 0
        data_records = 0
        skipped = 0

        while position < len(data):
            record_header = data[position]
            position += 1
            local_type = record_header & self.LOCAL_MESSAGE_MASK

            if record_header & self.DEFINITION_FLAG:
                layout, position = self._read_definition(data, position)
                layouts[local_type] = layout
                definitions += 1
                continue

            layout = layouts[local_type]
            if layout is None:
                # Record length is unknown without a definition; the header
                # byte is the only byte consumed.
                skipped += 1
                logger.debug(
                    f"Skipping data record at offset {position - 1}: "
                    f"no definition for local message {local_type}"
                )
                continue

            values, position = self._read_data(data, position, layout)
            data_records += 1

            if layout.global_message_number == self.RECORD_MESSAGE_NUMBER:
                assembler.add(RecordFields.from_raw(values))

        logger.info(
            f"Decoded {len(data)} bytes: {definitions} definitions, "
            f"{data_records} data records, {skipped} skipped, "
            f"{len(assembler)} samples"
        )

        if len(assembler) == 0:
            raise NoActivityDataError()

        return list(assembler.samples)

    def _validate_header(self, data: bytes) -> int:
        """Check the file header and return the header length"""
        if len(data) < self.MIN_FILE_LENGTH:
            raise InvalidFormatError(
                f"file is {len(data)} bytes, need at least {self.MIN_FILE_LENGTH}"
            )

        header_length = data[0]
        protocol_version = data[1]

        if header_length < self.MIN_HEADER_LENGTH:
            raise InvalidFormatError(f"header length {header_length} is too small")
        if protocol_version > self.MAX_PROTOCOL_VERSION:
            raise UnsupportedVersionError(f"protocol version {protocol_version}")

        return header_length

    def _read_definition(self, data: bytes, position: int) -> Tuple[MessageLayout, int]:
        """Read a definition record body starting after its header byte"""
        if position + self.DEFINITION_FIXED_LENGTH > len(data):
            raise CorruptedDataError(f"truncated definition at offset {position}")

        # Skip reserved byte
        position += 1

        little_endian = data[position] == 0
        position += 1

        byteorder = "little" if little_endian else "big"
        global_message_number = int.from_bytes(
            data[position : position + 2], byteorder=byteorder, signed=False
        )
        position += 2

        field_count = data[position]
        position += 1

        fields: List[FieldLayout] = []
        for _ in range(field_count):
            if position + self.FIELD_DESCRIPTOR_LENGTH > len(data):
                raise CorruptedDataError(
                    f"truncated field descriptor at offset {position}"
                )
            fields.append(
                FieldLayout(
                    field_number=data[position],
                    byte_size=data[position + 1],
                    base_type_code=data[position + 2],
                )
            )
            position += self.FIELD_DESCRIPTOR_LENGTH

        layout = MessageLayout(
            global_message_number=global_message_number,
            fields=tuple(fields),
            little_endian=little_endian,
        )
        return layout, position

    def _read_data(
        self, data: bytes, position: int, layout: MessageLayout
    ) -> Tuple[Dict[int, Any], int]:
        """Read a data record body and return raw values keyed by field number"""
        values: Dict[int, Any] = {}

        for field in layout.fields:
            end = position + field.byte_size
            if end > len(data):
                raise CorruptedDataError(
                    f"field {field.field_number} ({field.byte_size} bytes) "
                    f"overruns buffer at offset {position}"
                )

            value = self._decode_value(
                data[position:end], field.base_type_code, layout.byteorder
            )
            if value is not None:
                values[field.field_number] = value

            # Always advance by the declared size, decoded or not
            position = end

        return values, position

    def _decode_value(
        self, raw: bytes, base_type_code: int, byteorder: str
    ) -> Optional[Union[int, str]]:
        """Decode one field; unknown types and short fields give None"""
        try:
            base_type = BaseType(base_type_code & self.BASE_TYPE_MASK)
        except ValueError:
            return None

        if base_type == BaseType.STRING:
            try:
                text = raw.decode("utf-8")
            except UnicodeDecodeError:
                return None
            return _EDGE_CONTROL_CHARS.sub("", text)

        if base_type in (BaseType.ENUM, BaseType.UINT8, BaseType.SINT8):
            if not raw:
                return None
            return int.from_bytes(
                raw[:1], byteorder=byteorder, signed=base_type == BaseType.SINT8
            )

        width, signed = _WIDE_INTEGER_TYPES[base_type]
        if len(raw) < width:
            return None
        return int.from_bytes(raw[:width], byteorder=byteorder, signed=signed)


def decode_fit_samples(data: bytes, carry_forward: bool = True) -> List[Sample]:
    """
    Convenience function to decode FIT content into samples.

    Args:
        data: Raw FIT file content
        carry_forward: Keep last known values for omitted fields

    Returns:
        List of decoded samples
    """
    return FitRecordDecoder(carry_forward=carry_forward).decode(data)
