from decimal import Decimal

from app.domain.billing import ledger


def test_totals_for_mixed_lines_with_tax():
    totals = ledger.compute_totals([(2, "35.00"), (1, "15.00")], 12)
    assert totals.subtotal == Decimal("85.00")
    assert totals.tax == Decimal("10.20")
    assert totals.total == Decimal("95.20")
    assert [line.subtotal for line in totals.lines] == [Decimal("70.00"), Decimal("15.00")]


def test_total_is_subtotal_plus_tax():
    totals = ledger.compute_totals([(3, "19.99"), (None, "0.05")], Decimal("7.5"))
    assert totals.total == totals.subtotal + totals.tax


def test_missing_quantity_counts_as_one():
    totals = ledger.compute_totals([(None, "40.00")], 0)
    assert totals.lines[0].quantity == 1
    assert totals.total == Decimal("40.00")


def test_tax_rounds_half_up_to_cents():
    # 10.05 * 5% = 0.5025 -> 0.50 ; 10.10 * 5% = 0.505 -> 0.51
    assert ledger.compute_totals([(1, "10.05")], 5).tax == Decimal("0.50")
    assert ledger.compute_totals([(1, "10.10")], 5).tax == Decimal("0.51")


def test_sub_cent_amounts():
    assert ledger.has_sub_cents("0.004")
    assert ledger.has_sub_cents(Decimal("12.345"))
    assert ledger.has_sub_cents(0.015)
    assert not ledger.has_sub_cents("35.000")
    assert not ledger.has_sub_cents(100)
    assert not ledger.has_sub_cents("19.99")


def test_float_prices_do_not_leak_binary_noise():
    totals = ledger.compute_totals([(3, 0.1)], 0)
    assert totals.subtotal == Decimal("0.30")


def test_exceeds_balance_uses_tolerance():
    total, paid = Decimal("100.00"), Decimal("80.00")
    assert ledger.exceeds_balance(Decimal("25.00"), total, paid)
    assert not ledger.exceeds_balance(Decimal("20.00"), total, paid)
    assert not ledger.exceeds_balance(Decimal("20.01"), total, paid)
    assert ledger.exceeds_balance(Decimal("20.02"), total, paid)


def test_payment_status_progression():
    total = Decimal("100.00")
    assert ledger.payment_status_for(total, Decimal("0")) == ledger.PAYMENT_PENDING
    assert ledger.payment_status_for(total, Decimal("50")) == ledger.PAYMENT_PARTIAL
    assert ledger.payment_status_for(total, Decimal("99.99")) == ledger.PAYMENT_PAID
    assert ledger.payment_status_for(total, Decimal("100.00")) == ledger.PAYMENT_PAID


def test_total_paid_sums_mixed_inputs():
    assert ledger.total_paid([Decimal("10.10"), "5.05", 1]) == Decimal("16.15")


def test_invoice_number_format():
    assert ledger.format_invoice_number(2026, 1) == "FAC-2026-000001"
    assert ledger.format_invoice_number(2026, 123456) == "FAC-2026-123456"


def test_cancellation_note():
    assert ledger.cancellation_note("Duplicated") == "[ANULADA] Duplicated"
    assert ledger.cancellation_note(None) == "[ANULADA]"
