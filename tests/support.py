import itertools
import os
import sqlite3
import tempfile
import unittest
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.database.engine import Database
from app.models.medicine import Medicine
from app.models.stock_history import StockHistory

_sku_counter = itertools.count(1)


def locked_error(statement="UPDATE medicines"):
    return OperationalError(statement, {}, sqlite3.OperationalError("database is locked"))


def disk_error(statement="INSERT INTO medicine_stock_history"):
    return OperationalError(statement, {}, sqlite3.OperationalError("disk I/O error"))


class LedgerTestCase(unittest.TestCase):
    """Fresh file-backed SQLite database per test."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        url = "sqlite:///" + os.path.join(self._tmp.name, "ledger.db")
        self.database = Database(url, lock_timeout_seconds=5)
        self.database.create_schema()

    def tearDown(self):
        self.database.dispose()
        self._tmp.cleanup()

    def add_medicine(self, quantity=10, sku=None, name="Amoxicillin 500mg", **fields):
        db = self.database.session()
        try:
            medicine = Medicine(
                sku=sku or "SKU-{}".format(next(_sku_counter)),
                name=name,
                unit_price=fields.pop("unit_price", Decimal("4.20")),
                quantity_on_hand=quantity,
                initial_quantity=quantity,
                **fields,
            )
            db.add(medicine)
            db.commit()
            return medicine.id
        finally:
            db.close()

    def quantity_of(self, medicine_id):
        db = self.database.session()
        try:
            return db.execute(
                select(Medicine.quantity_on_hand).where(Medicine.id == medicine_id)
            ).scalar_one()
        finally:
            db.close()

    def history_of(self, medicine_id):
        db = self.database.session()
        try:
            return list(
                db.execute(
                    select(StockHistory.change_amount)
                    .where(StockHistory.medicine_id == medicine_id)
                    .order_by(StockHistory.id)
                ).scalars()
            )
        finally:
            db.close()
