"""
Billing domain

ledger.py holds the pure arithmetic (totals, tax, balance, payment status);
service.py applies it to invoices and payments under an invoice row lock.
"""
