# Copyright (C) 2026 The hwwallet developers
# Distributed under the MIT software license, see the accompanying
# file LICENCE or http://www.opensource.org/licenses/mit-license.php
"""Wire messages exchanged with the device.

The protobuf schema is declared here as a FileDescriptorProto and loaded into
a private descriptor pool, so no generated *_pb2 modules are needed. A frame
on the wire is a (kind, payload) pair; `build` and `decode` convert between
that and the protobuf objects.
"""

import enum
from typing import Any, Dict, List, Optional, Tuple

import attr
from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf import json_format
from google.protobuf.descriptor import FieldDescriptor
from google.protobuf.message import DecodeError, EncodeError, Message

from .util import DecodeFailure


class MessageType(enum.IntEnum):
    Initialize = 0
    Ping = 1
    Success = 2
    Failure = 3
    ChangePin = 4
    WipeDevice = 5
    FirmwareErase = 6
    FirmwareUpload = 7
    Features = 17
    PinMatrixRequest = 18
    PinMatrixAck = 19
    Cancel = 20
    ApplySettings = 25
    ButtonRequest = 26
    ButtonAck = 27
    BackupDevice = 34
    PassphraseRequest = 41
    PassphraseAck = 42
    RecoveryDevice = 45
    WordRequest = 46
    WordAck = 47
    GetFeatures = 55
    DebugLinkDecision = 100
    SetMnemonic = 113
    AddressGen = 114
    ResponseAddress = 115
    CheckMessageSignature = 116
    SignMessage = 117
    ResponseSignMessage = 118
    GenerateMnemonic = 119
    TransactionSign = 120
    ResponseTransactionSign = 121


class FailureType(enum.IntEnum):
    UnexpectedMessage = 1
    ButtonExpected = 2
    DataError = 3
    ActionCancelled = 4
    PinExpected = 5
    PinCancelled = 6
    PinInvalid = 7
    InvalidSignature = 8
    ProcessError = 9
    NotEnoughFunds = 10
    NotInitialized = 11
    PinMismatch = 12
    AddressGeneration = 13
    FirmwareError = 99


PIN_FAILURES = frozenset({
    FailureType.PinExpected,
    FailureType.PinCancelled,
    FailureType.PinInvalid,
    FailureType.PinMismatch,
})


class PinMatrixRequestType(enum.IntEnum):
    Current = 1
    NewFirst = 2
    NewSecond = 3


class ButtonType(enum.IntEnum):
    LEFT = 0
    RIGHT = 1
    BOTH = 2

    @classmethod
    def from_string(cls, s: str) -> 'ButtonType':
        try:
            return cls[s.strip().upper()]
        except KeyError:
            raise ValueError(f"unknown button {s!r}, expected one of left, right, both") from None


# name -> [(field name, number, type, label)]
# type is a scalar name or the name of another message in this schema
_SCHEMA = {
    'Initialize': [],
    'Ping': [('message', 1, 'string', 'optional')],
    'GetFeatures': [],
    'Features': [
        ('vendor', 1, 'string', 'optional'),
        ('major_version', 2, 'uint32', 'optional'),
        ('minor_version', 3, 'uint32', 'optional'),
        ('patch_version', 4, 'uint32', 'optional'),
        ('bootloader_mode', 5, 'bool', 'optional'),
        ('device_id', 6, 'string', 'optional'),
        ('pin_protection', 7, 'bool', 'optional'),
        ('passphrase_protection', 8, 'bool', 'optional'),
        ('language', 9, 'string', 'optional'),
        ('label', 10, 'string', 'optional'),
        ('initialized', 12, 'bool', 'optional'),
        ('bootloader_hash', 14, 'bytes', 'optional'),
        ('pin_cached', 16, 'bool', 'optional'),
        ('passphrase_cached', 17, 'bool', 'optional'),
        ('firmware_present', 18, 'bool', 'optional'),
        ('needs_backup', 19, 'bool', 'optional'),
        ('model', 21, 'string', 'optional'),
        ('fw_major', 22, 'uint32', 'optional'),
        ('fw_minor', 23, 'uint32', 'optional'),
        ('fw_patch', 24, 'uint32', 'optional'),
        ('fw_vendor', 25, 'string', 'optional'),
        ('fw_vendor_keys', 26, 'bytes', 'optional'),
        ('unfinished_backup', 27, 'bool', 'optional'),
    ],
    'Success': [('message', 1, 'string', 'optional')],
    'Failure': [
        ('code', 1, 'uint32', 'optional'),
        ('message', 2, 'string', 'optional'),
    ],
    'ButtonRequest': [
        ('code', 1, 'uint32', 'optional'),
        ('data', 2, 'string', 'optional'),
    ],
    'ButtonAck': [],
    'PinMatrixRequest': [('type', 1, 'uint32', 'optional')],
    'PinMatrixAck': [('pin', 1, 'string', 'required')],
    'PassphraseRequest': [],
    'PassphraseAck': [('passphrase', 1, 'string', 'required')],
    'WordRequest': [],
    'WordAck': [('word', 1, 'string', 'required')],
    'Cancel': [],
    'ChangePin': [('remove', 1, 'bool', 'optional')],
    'WipeDevice': [],
    'FirmwareErase': [('length', 1, 'uint32', 'optional')],
    'FirmwareUpload': [
        ('payload', 1, 'bytes', 'required'),
        ('hash', 2, 'bytes', 'optional'),
    ],
    'ApplySettings': [
        ('language', 1, 'string', 'optional'),
        ('label', 2, 'string', 'optional'),
        ('use_passphrase', 3, 'bool', 'optional'),
    ],
    'BackupDevice': [],
    'RecoveryDevice': [
        ('word_count', 1, 'uint32', 'optional'),
        ('passphrase_protection', 2, 'bool', 'optional'),
        ('dry_run', 9, 'bool', 'optional'),
    ],
    'SetMnemonic': [('mnemonic', 1, 'string', 'required')],
    'GenerateMnemonic': [
        ('word_count', 1, 'uint32', 'optional'),
        ('passphrase_protection', 2, 'bool', 'optional'),
    ],
    'AddressGen': [
        ('address_n', 1, 'uint32', 'required'),
        ('start_index', 2, 'uint32', 'optional'),
        ('confirm_address', 3, 'bool', 'optional'),
        ('wallet_type', 4, 'string', 'optional'),
    ],
    'ResponseAddress': [('addresses', 1, 'string', 'repeated')],
    'CheckMessageSignature': [
        ('address', 1, 'string', 'required'),
        ('message', 2, 'string', 'required'),
        ('signature', 3, 'string', 'required'),
    ],
    'SignMessage': [
        ('address_n', 1, 'uint32', 'required'),
        ('message', 2, 'string', 'required'),
        ('wallet_type', 3, 'string', 'optional'),
    ],
    'ResponseSignMessage': [('signed_message', 1, 'string', 'required')],
    'TransactionInput': [
        ('hash_in', 1, 'string', 'required'),
        ('index', 2, 'uint32', 'optional'),
    ],
    'TransactionOutput': [
        ('address', 1, 'string', 'required'),
        ('coin', 2, 'uint64', 'required'),
        ('hour', 3, 'uint64', 'required'),
        ('address_index', 4, 'uint32', 'optional'),
    ],
    'TransactionSign': [
        ('nb_in', 1, 'uint32', 'required'),
        ('nb_out', 2, 'uint32', 'required'),
        ('transaction_in', 3, 'TransactionInput', 'repeated'),
        ('transaction_out', 4, 'TransactionOutput', 'repeated'),
        ('version', 5, 'uint32', 'optional'),
        ('lock_time', 6, 'uint32', 'optional'),
        ('wallet_type', 7, 'string', 'optional'),
    ],
    'ResponseTransactionSign': [('signatures', 1, 'string', 'repeated')],
    'DebugLinkDecision': [('press_button', 1, 'uint32', 'required')],
}

_PACKAGE = 'hwwallet'

_SCALAR_TYPES = {
    'string': descriptor_pb2.FieldDescriptorProto.TYPE_STRING,
    'bytes': descriptor_pb2.FieldDescriptorProto.TYPE_BYTES,
    'bool': descriptor_pb2.FieldDescriptorProto.TYPE_BOOL,
    'uint32': descriptor_pb2.FieldDescriptorProto.TYPE_UINT32,
    'uint64': descriptor_pb2.FieldDescriptorProto.TYPE_UINT64,
}

_LABELS = {
    'optional': descriptor_pb2.FieldDescriptorProto.LABEL_OPTIONAL,
    'required': descriptor_pb2.FieldDescriptorProto.LABEL_REQUIRED,
    'repeated': descriptor_pb2.FieldDescriptorProto.LABEL_REPEATED,
}


def _build_file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    fdp = descriptor_pb2.FileDescriptorProto()
    fdp.name = 'hwwallet/messages.proto'
    fdp.package = _PACKAGE
    fdp.syntax = 'proto2'
    for msg_name, fields in _SCHEMA.items():
        mdp = fdp.message_type.add()
        mdp.name = msg_name
        for field_name, number, type_name, label in fields:
            fd = mdp.field.add()
            fd.name = field_name
            fd.number = number
            fd.label = _LABELS[label]
            if type_name in _SCALAR_TYPES:
                fd.type = _SCALAR_TYPES[type_name]
            else:
                assert type_name in _SCHEMA, type_name
                fd.type = descriptor_pb2.FieldDescriptorProto.TYPE_MESSAGE
                fd.type_name = f'.{_PACKAGE}.{type_name}'
    return fdp


_pool = descriptor_pool.DescriptorPool()
_pool.AddSerializedFile(_build_file_descriptor().SerializeToString())

_classes = {
    name: message_factory.GetMessageClass(_pool.FindMessageTypeByName(f'{_PACKAGE}.{name}'))
    for name in _SCHEMA
}

# every kind has a schema
assert not set(MessageType.__members__) - set(_classes), set(MessageType.__members__) - set(_classes)


def get_class(name: str):
    return _classes[name]


def new_message(name: str, **fields):
    """Instantiate a protobuf message of this schema. None-valued fields are left unset."""
    return get_class(name)(**{k: v for k, v in fields.items() if v is not None})


@attr.s(frozen=True, slots=True)
class WireMessage:
    """One protocol unit: a numeric kind and its opaque serialized payload."""
    kind = attr.ib(type=int, converter=int)
    data = attr.ib(type=bytes, default=b'', converter=bytes, repr=lambda d: f"<{len(d)} bytes>")

    @property
    def kind_name(self) -> str:
        try:
            return MessageType(self.kind).name
        except ValueError:
            return f"unknown({self.kind})"


def build(kind: MessageType, **fields) -> WireMessage:
    kind = MessageType(kind)
    try:
        pb = new_message(kind.name, **fields)
        data = pb.SerializeToString()
    except (TypeError, ValueError, EncodeError) as e:
        raise ValueError(f"cannot encode {kind.name}: {e}") from e
    return WireMessage(kind=kind, data=data)


def decode(msg: WireMessage, kind: Optional[MessageType] = None):
    if kind is not None and msg.kind != kind:
        raise DecodeFailure(f"expected {MessageType(kind).name}, got {msg.kind_name}")
    try:
        cls = get_class(MessageType(msg.kind).name)
    except ValueError:
        raise DecodeFailure(f"no schema for message kind {msg.kind}") from None
    pb = cls()
    try:
        pb.ParseFromString(msg.data)
    except DecodeError as e:
        raise DecodeFailure(f"malformed {msg.kind_name} payload: {e}") from e
    if not pb.IsInitialized():
        raise DecodeFailure(f"malformed {msg.kind_name} payload: missing {', '.join(pb.FindInitializationErrors())}")
    bad_field = _find_invalid_text(pb)
    if bad_field is not None:
        raise DecodeFailure(f"malformed {msg.kind_name} payload: invalid UTF-8 in {bad_field}")
    return pb


def _find_invalid_text(pb: Message, prefix: str = '') -> Optional[str]:
    # proto2 parsing hands back string fields that are not UTF-8 as bytes
    for field, value in pb.ListFields():
        if field.type not in (FieldDescriptor.TYPE_STRING, FieldDescriptor.TYPE_MESSAGE):
            continue
        values = [value] if isinstance(value, (str, bytes, Message)) else value
        for v in values:
            if field.type == FieldDescriptor.TYPE_STRING and isinstance(v, bytes):
                return prefix + field.name
            if field.type == FieldDescriptor.TYPE_MESSAGE:
                bad_field = _find_invalid_text(v, f"{prefix}{field.name}.")
                if bad_field is not None:
                    return bad_field
    return None


def decode_success_msg(msg: WireMessage) -> str:
    return decode(msg, MessageType.Success).message


def decode_fail_msg(msg: WireMessage) -> Tuple[Optional[int], str]:
    pb = decode(msg, MessageType.Failure)
    code = pb.code if pb.HasField('code') else None
    return code, pb.message


def decode_features(msg: WireMessage) -> Dict[str, Any]:
    pb = decode(msg, MessageType.Features)
    return json_format.MessageToDict(pb, preserving_proto_field_name=True)


def decode_response_address(msg: WireMessage) -> List[str]:
    return list(decode(msg, MessageType.ResponseAddress).addresses)


def decode_response_sign_message(msg: WireMessage) -> str:
    return decode(msg, MessageType.ResponseSignMessage).signed_message


def decode_response_transaction_sign(msg: WireMessage) -> List[str]:
    return list(decode(msg, MessageType.ResponseTransactionSign).signatures)


TERMINAL_DECODERS = {
    MessageType.Success: decode_success_msg,
    MessageType.Features: decode_features,
    MessageType.ResponseAddress: decode_response_address,
    MessageType.ResponseSignMessage: decode_response_sign_message,
    MessageType.ResponseTransactionSign: decode_response_transaction_sign,
}


@attr.s(frozen=True)
class TransactionInput:
    hash_in = attr.ib(type=str)
    index = attr.ib(type=int, default=0)

    def to_proto(self):
        return new_message('TransactionInput', hash_in=self.hash_in, index=self.index)


@attr.s(frozen=True)
class TransactionOutput:
    address = attr.ib(type=str)
    coin = attr.ib(type=int)
    hour = attr.ib(type=int)
    address_index = attr.ib(type=Optional[int], default=None)

    def to_proto(self):
        return new_message('TransactionOutput', address=self.address, coin=self.coin,
                           hour=self.hour, address_index=self.address_index)
