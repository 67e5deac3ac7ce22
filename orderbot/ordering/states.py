# orderbot/ordering/states.py
from __future__ import annotations

from enum import Enum


class State(str, Enum):
    MAIN_MENU = "main_menu"
    STATUS_QUERY = "status_query"
    MENU = "menu"
    QUANTITY_PENDING = "quantity_pending"
    ADD_MORE = "add_more"
    OFFER_DRINKS = "offer_drinks"
    DRINKS = "drinks"
    DRINK_QUANTITY = "drink_quantity"
    ADD_DRINK = "add_drink"
    SUMMARY = "summary"
    INSTRUCTIONS = "instructions"
    MODIFY = "modify"
    MODIFY_ACTION = "modify_action"
    MODIFY_QUANTITY = "modify_quantity"
    NAME = "name"
    ADDRESS = "address"
    PAYMENT_METHOD = "payment_method"
    CASH_AMOUNT = "cash_amount"
    WALLET_NUMBER_ENTRY = "wallet_number_entry"
    AWAITING_PROOF = "awaiting_proof"
    PENDING_VERIFICATION = "pending_verification"
    PAYMENT_DENIED = "payment_denied"


ORDER_STATUS_IN_PREPARATION = "in-preparation"

VERIFICATION_PENDING = "pending"
VERIFICATION_CONFIRMED = "confirmed"
VERIFICATION_DENIED = "denied"
