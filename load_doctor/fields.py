"""Canonical load fields and the header vocabulary used to recognise them."""

from __future__ import annotations

LOAD_ID = "loadId"
FROM_ADDRESS = "fromAddress"
FROM_APPOINTMENT = "fromAppointmentDateTimeUTC"
TO_ADDRESS = "toAddress"
TO_APPOINTMENT = "toAppointmentDateTimeUTC"
STATUS = "status"
DRIVER_NAME = "driverName"
DRIVER_PHONE = "driverPhone"
UNIT_NUMBER = "unitNumber"
BROKER = "broker"

FIELDS = (
    LOAD_ID,
    FROM_ADDRESS,
    FROM_APPOINTMENT,
    TO_ADDRESS,
    TO_APPOINTMENT,
    STATUS,
    DRIVER_NAME,
    DRIVER_PHONE,
    UNIT_NUMBER,
    BROKER,
)
OPTIONAL_FIELDS = frozenset({DRIVER_PHONE})
REQUIRED_FIELDS = tuple(field for field in FIELDS if field not in OPTIONAL_FIELDS)
TIMESTAMP_FIELDS = (FROM_APPOINTMENT, TO_APPOINTMENT)
REMAPPABLE_FIELDS = (STATUS, BROKER)

# Synonyms are stored in canonical form (see mapping.canonicalize).
FIELD_SYNONYMS = {
    LOAD_ID: (
        "load id", "load", "load number", "load no", "vrid", "trip id",
        "shipment id", "reference", "ref", "pro", "pro number", "order id", "number",
    ),
    FROM_ADDRESS: (
        "from address", "from", "origin", "origin address", "pickup address",
        "pu address", "shipper address", "pickup location", "from location",
    ),
    FROM_APPOINTMENT: (
        "from appointment date time utc", "from appointment", "pickup appointment",
        "pickup appt", "pu appt", "pu", "pickup", "pickup datetime",
        "pickup date time", "origin appointment", "scheduled pickup",
    ),
    TO_ADDRESS: (
        "to address", "to", "destination", "destination address", "delivery address",
        "del address", "consignee address", "drop address", "to location",
    ),
    TO_APPOINTMENT: (
        "to appointment date time utc", "to appointment", "delivery appointment",
        "delivery appt", "del appt", "del", "delivery", "delivery datetime",
        "delivery date time", "destination appointment", "scheduled delivery", "drop",
    ),
    STATUS: ("status", "load status", "state", "stage"),
    DRIVER_NAME: ("driver", "driver name", "driver full name", "operator", "contact"),
    DRIVER_PHONE: (
        "driver phone", "phone", "driver cell", "cell", "mobile", "driver mobile",
        "phone number", "contact", "contact number",
    ),
    UNIT_NUMBER: (
        "unit", "unit number", "unit no", "truck", "truck number", "tractor",
        "tractor number", "power unit", "number",
    ),
    BROKER: ("broker", "broker name", "customer", "bill to", "brokerage"),
}

# Date-only / time-only source columns for a split appointment layout.
SPLIT_SYNONYMS = {
    FROM_APPOINTMENT: {
        "date": ("pu date", "pickup date", "from date", "origin date", "ship date"),
        "time": ("pu time", "pickup time", "from time", "origin time", "ship time"),
    },
    TO_APPOINTMENT: {
        "date": ("del date", "delivery date", "to date", "destination date", "drop date"),
        "time": ("del time", "delivery time", "to time", "destination time", "drop time"),
    },
}
