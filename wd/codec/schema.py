# wd/codec/schema.py

"""
Protobuf message classes for the WLOC and tile protocols.

The schemas are reverse-engineered, so they are declared here as descriptors
and turned into message classes at import time instead of being compiled from
a .proto file. Field numbers follow the messages observed on the wire; fields
we never read are left out and survive decoding as unknown fields.

Equivalent .proto (proto2)::

    message WifiDevice { optional string bssid = 1; optional Location location = 2; }
    message AppleWLoc {
      repeated WifiDevice wifi_devices = 2;
      optional sint32 num_cell_results = 3;
      optional sint32 num_wifi_results = 4;
      optional string app_bundle_id = 5;
      repeated CellTower cell_tower_response = 22;
      optional CellTower cell_tower_request = 25;
      optional DeviceType device_type = 33;
    }
    message CellTower {
      optional uint32 mcc = 1; optional uint32 mnc = 2;
      optional uint32 cell_id = 3; optional uint32 tac_id = 4;
      optional Location location = 5;
      optional uint32 uarfcn = 6; optional uint32 pid = 7;
    }
    message DeviceType { optional string operating_system = 1; optional string model = 2; }
    message Location { optional int64 latitude = 1; optional int64 longitude = 2; ... }
    message WifiTile { repeated TileRegion region = 4; }
    message TileRegion { repeated TileDevice devices = 2; }
    message TileDevice { optional TileEntry entry = 1; optional int64 bssid = 2; }
    message TileEntry { optional int64 lat = 1; optional int64 long = 2; }
"""

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

_PACKAGE = "wd"
_FD = descriptor_pb2.FieldDescriptorProto

_LOCATION_FIELDS = [
    ("latitude", 1),
    ("longitude", 2),
    ("horizontal_accuracy", 3),
    ("unknown_value4", 4),
    ("altitude", 5),
    ("vertical_accuracy", 6),
    ("speed", 7),
    ("course", 8),
    ("timestamp", 9),
    ("floor", 14),
]


def camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def _add_field(message, name, number, ftype, type_name=None, repeated=False):
    field = message.field.add()
    field.name = name
    field.json_name = camel_case(name)
    field.number = number
    field.type = ftype
    field.label = _FD.LABEL_REPEATED if repeated else _FD.LABEL_OPTIONAL
    if type_name:
        field.type_name = f".{_PACKAGE}.{type_name}"
    return field


def _build_file() -> descriptor_pb2.FileDescriptorProto:
    fdp = descriptor_pb2.FileDescriptorProto()
    fdp.name = "wd/wloc.proto"
    fdp.package = _PACKAGE
    fdp.syntax = "proto2"

    location = fdp.message_type.add(name="Location")
    for name, number in _LOCATION_FIELDS:
        _add_field(location, name, number, _FD.TYPE_INT64)

    wifi = fdp.message_type.add(name="WifiDevice")
    _add_field(wifi, "bssid", 1, _FD.TYPE_STRING)
    _add_field(wifi, "location", 2, _FD.TYPE_MESSAGE, "Location")

    device_type = fdp.message_type.add(name="DeviceType")
    _add_field(device_type, "operating_system", 1, _FD.TYPE_STRING)
    _add_field(device_type, "model", 2, _FD.TYPE_STRING)

    cell = fdp.message_type.add(name="CellTower")
    _add_field(cell, "mcc", 1, _FD.TYPE_UINT32)
    _add_field(cell, "mnc", 2, _FD.TYPE_UINT32)
    _add_field(cell, "cell_id", 3, _FD.TYPE_UINT32)
    _add_field(cell, "tac_id", 4, _FD.TYPE_UINT32)
    _add_field(cell, "location", 5, _FD.TYPE_MESSAGE, "Location")
    _add_field(cell, "uarfcn", 6, _FD.TYPE_UINT32)
    _add_field(cell, "pid", 7, _FD.TYPE_UINT32)

    wloc = fdp.message_type.add(name="AppleWLoc")
    _add_field(wloc, "wifi_devices", 2, _FD.TYPE_MESSAGE, "WifiDevice", repeated=True)
    _add_field(wloc, "num_cell_results", 3, _FD.TYPE_SINT32)
    _add_field(wloc, "num_wifi_results", 4, _FD.TYPE_SINT32)
    _add_field(wloc, "app_bundle_id", 5, _FD.TYPE_STRING)
    _add_field(wloc, "cell_tower_response", 22, _FD.TYPE_MESSAGE, "CellTower", repeated=True)
    _add_field(wloc, "cell_tower_request", 25, _FD.TYPE_MESSAGE, "CellTower")
    _add_field(wloc, "device_type", 33, _FD.TYPE_MESSAGE, "DeviceType")

    entry = fdp.message_type.add(name="TileEntry")
    _add_field(entry, "lat", 1, _FD.TYPE_INT64)
    _add_field(entry, "long", 2, _FD.TYPE_INT64)

    tile_device = fdp.message_type.add(name="TileDevice")
    _add_field(tile_device, "entry", 1, _FD.TYPE_MESSAGE, "TileEntry")
    _add_field(tile_device, "bssid", 2, _FD.TYPE_INT64)

    region = fdp.message_type.add(name="TileRegion")
    _add_field(region, "devices", 2, _FD.TYPE_MESSAGE, "TileDevice", repeated=True)

    tile = fdp.message_type.add(name="WifiTile")
    _add_field(tile, "region", 4, _FD.TYPE_MESSAGE, "TileRegion", repeated=True)

    return fdp


_pool = descriptor_pool.DescriptorPool()
_pool.Add(_build_file())


def _message_class(name: str):
    return message_factory.GetMessageClass(_pool.FindMessageTypeByName(f"{_PACKAGE}.{name}"))


AppleWLoc = _message_class("AppleWLoc")
WifiDeviceMessage = _message_class("WifiDevice")
LocationMessage = _message_class("Location")
CellTowerMessage = _message_class("CellTower")
DeviceTypeMessage = _message_class("DeviceType")
WifiTile = _message_class("WifiTile")
