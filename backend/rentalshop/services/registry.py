# Overview: Builds request-scoped services from app config and the db session.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from .customer_service import CustomerService
from .deposit_service import DepositLedger
from .directory_service import DirectoryService
from .order_service import OrderService
from .repository import OrderRepository
from .return_service import ReturnProcessor


def repository() -> OrderRepository:
    return OrderRepository(db.session)


def order_service() -> OrderService:
    config = current_app.config
    return OrderService(
        repository(),
        invoice_prefix=config["INVOICE_PREFIX"],
        business_timezone=config["BUSINESS_TIMEZONE"],
        cancel_window_minutes=config["CANCEL_WINDOW_MINUTES"],
        default_gst_rate=config["DEFAULT_GST_RATE"],
        retry_attempts=config["STORE_RETRY_ATTEMPTS"],
    )


def return_processor() -> ReturnProcessor:
    config = current_app.config
    return ReturnProcessor(
        repository(),
        issue_policy=config["ISSUE_STATUS_POLICY"],
        retry_attempts=config["STORE_RETRY_ATTEMPTS"],
    )


def deposit_ledger() -> DepositLedger:
    return DepositLedger(repository(), retry_attempts=current_app.config["STORE_RETRY_ATTEMPTS"])


def customer_service() -> CustomerService:
    config = current_app.config
    return CustomerService(
        repository(),
        number_prefix=config["CUSTOMER_NUMBER_PREFIX"],
        retry_attempts=config["STORE_RETRY_ATTEMPTS"],
    )


def directory_service() -> DirectoryService:
    return DirectoryService(repository(), retry_attempts=current_app.config["STORE_RETRY_ATTEMPTS"])
