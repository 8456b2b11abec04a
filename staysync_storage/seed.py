"""
Built-in demo records.

Used to populate empty local collections on first run while demo mode is on,
and by ``SyncEngine.reset_to_demo``. Collections without sample records
start empty.
"""

from __future__ import annotations

import copy

from .schema import Collection, Record

DEMO_ROOMS: list[Record] = [
    {"id": "101", "number": "101", "type": "Single", "status": "Available", "price": 120},
    {"id": "102", "number": "102", "type": "Single", "status": "Occupied", "price": 120, "guestId": "g1"},
    {"id": "103", "number": "103", "type": "Double", "status": "Dirty", "price": 180},
    {"id": "104", "number": "104", "type": "Double", "status": "Available", "price": 180},
    {"id": "201", "number": "201", "type": "Suite", "status": "Maintenance", "price": 350},
    {"id": "202", "number": "202", "type": "Deluxe", "status": "Occupied", "price": 250, "guestId": "g2"},
    {"id": "203", "number": "203", "type": "Deluxe", "status": "Available", "price": 250},
    {"id": "204", "number": "204", "type": "Single", "status": "Dirty", "price": 120},
]

DEMO_GUESTS: list[Record] = [
    {
        "id": "g1",
        "name": "Guest One",
        "email": "guest1@example.com",
        "phone": "555-0101",
        "checkIn": "2023-10-25",
        "checkOut": "2023-10-28",
        "roomNumber": "102",
        "vip": False,
        "status": "Checked In",
        "balance": 0,
    },
    {
        "id": "g2",
        "name": "Guest Two",
        "email": "guest2@example.com",
        "phone": "555-0102",
        "checkIn": "2023-10-26",
        "checkOut": "2023-10-30",
        "roomNumber": "202",
        "vip": True,
        "status": "Checked In",
        "balance": 125,
    },
    {
        "id": "g3",
        "name": "Guest Three",
        "email": "guest3@example.com",
        "phone": "555-0103",
        "checkIn": "2023-10-28",
        "checkOut": "2023-11-01",
        "roomNumber": "104",
        "vip": False,
        "status": "Reserved",
        "balance": 0,
    },
]

DEMO_HISTORY: list[Record] = [
    {
        "id": "h1",
        "guestId": "g1",
        "checkIn": "2022-12-10",
        "checkOut": "2022-12-15",
        "roomNumber": "101",
        "roomType": "Single",
        "totalAmount": 600,
        "status": "Completed",
        "rating": 5,
    },
    {
        "id": "h2",
        "guestId": "g1",
        "checkIn": "2023-05-20",
        "checkOut": "2023-05-22",
        "roomNumber": "103",
        "roomType": "Double",
        "totalAmount": 360,
        "status": "Completed",
        "rating": 4,
    },
]

DEMO_MAINTENANCE: list[Record] = [
    {
        "id": "m1",
        "roomNumber": "201",
        "description": "AC unit leaking water",
        "priority": "High",
        "status": "In Progress",
        "reportedBy": "Housekeeping",
        "date": "2023-10-26",
    },
    {
        "id": "m2",
        "roomNumber": "103",
        "description": "TV remote batteries dead",
        "priority": "Low",
        "status": "Pending",
        "reportedBy": "Guest",
        "date": "2023-10-27",
    },
]

# Demo staff only exist in offline demo mode
DEMO_STAFF: list[Record] = [
    {"id": "s0", "name": "Demo Admin", "email": "admin@hotel.com", "role": "Superuser",
     "status": "On Duty", "shift": "Any", "pin": "0000"},
    {"id": "s1", "name": "Demo Manager", "email": "manager@hotel.com", "role": "Manager",
     "status": "On Duty", "shift": "Morning", "pin": "1234"},
    {"id": "s2", "name": "Front Desk", "email": "reception@hotel.com", "role": "Reception",
     "status": "On Duty", "shift": "Morning", "pin": "1111"},
]

DEMO_TRANSACTIONS: list[Record] = [
    {"id": "t1", "date": "2023-10-26", "category": "Room Revenue", "amount": 450,
     "description": "Room 101 Payment", "type": "Income"},
    {"id": "t2", "date": "2023-10-26", "category": "F&B", "amount": 75,
     "description": "Breakfast Service", "type": "Income"},
]

_DEMO_DATA: dict[Collection, list[Record]] = {
    Collection.ROOMS: DEMO_ROOMS,
    Collection.GUESTS: DEMO_GUESTS,
    Collection.STAFF: DEMO_STAFF,
    Collection.TRANSACTIONS: DEMO_TRANSACTIONS,
    Collection.MAINTENANCE: DEMO_MAINTENANCE,
    Collection.HISTORY: DEMO_HISTORY,
}


def demo_records(collection: Collection) -> list[Record]:
    """Return a fresh copy of the demo records for a collection."""
    return copy.deepcopy(_DEMO_DATA.get(collection, []))
