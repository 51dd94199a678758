"""
Tests for reloan eligibility, guarantor derivation and inherited profile documents.
Run from project root: python -m pytest tests/test_eligibility.py -v
Or: python -m unittest tests.test_eligibility -v
"""
import unittest
from decimal import Decimal

from schemas.documents import DocumentRef
from schemas.registry import GroupMember, Guarantor, ReloanEligibility
from services.eligibility import (
    RELOAN_LOCKED_FIELDS,
    active_product_ids,
    derive_guarantors,
    estimate_reloan_eligibility,
    guarantor_shortfall,
    is_reloan_blocked,
    latest_reloan_eligibility,
    locked_fields,
    merge_profile_documents,
    reloan_block,
    reloan_deduction,
)
from tests.factories import make_customer, make_members, open_loan, valid_context


class TestReloanEligibility(unittest.TestCase):
    def test_estimate_at_75_percent_is_eligible(self):
        """120,000 repayable with 30,000 outstanding -> 75% paid."""
        eligibility = estimate_reloan_eligibility(open_loan(outstanding=30_000))
        self.assertTrue(eligibility.is_eligible)
        self.assertEqual(eligibility.progress, 75)
        self.assertEqual(eligibility.balance, Decimal(30_000))
        self.assertEqual(eligibility.total_weeks, 48)

    def test_estimate_at_40_percent_is_not_eligible(self):
        eligibility = estimate_reloan_eligibility(open_loan(outstanding=72_000))
        self.assertFalse(eligibility.is_eligible)
        self.assertEqual(eligibility.progress, 40)

    def test_threshold_is_inclusive(self):
        """Exactly 70% paid (36,000 of 120,000 outstanding) is enough."""
        self.assertTrue(estimate_reloan_eligibility(open_loan(outstanding=36_000)).is_eligible)
        self.assertFalse(estimate_reloan_eligibility(open_loan(outstanding=36_001)).is_eligible)

    def test_full_amount_takes_precedence(self):
        loan = open_loan(outstanding=50_000).model_copy(update={"fuil_amount": Decimal(200_000)})
        eligibility = estimate_reloan_eligibility(loan)
        self.assertEqual(eligibility.progress, 75)
        self.assertTrue(eligibility.is_eligible)

    def test_server_eligibility_wins(self):
        server = ReloanEligibility(is_eligible=False, progress=65, paid_weeks=31, total_weeks=48)
        loan = open_loan(outstanding=0).model_copy(update={"reloan_eligibility": server})
        self.assertIs(estimate_reloan_eligibility(loan), server)

    def test_latest_uses_first_open_loan(self):
        loans = [
            open_loan(outstanding=0, status="Completed"),
            open_loan(outstanding=72_000),
            open_loan(outstanding=30_000),
        ]
        self.assertEqual(latest_reloan_eligibility(loans).progress, 40)
        self.assertIsNone(latest_reloan_eligibility([open_loan(outstanding=0, status="Rejected")]))
        self.assertEqual(active_product_ids(loans + [open_loan(0, product_id=2)]), [1, 1, 2])

    def test_deduction_only_when_eligible(self):
        eligible = ReloanEligibility(is_eligible=True, progress=80, balance=Decimal(24_000))
        blocked = ReloanEligibility(is_eligible=False, progress=40, balance=Decimal(72_000))
        self.assertEqual(reloan_deduction(eligible), Decimal(24_000))
        self.assertEqual(reloan_deduction(blocked), Decimal(0))
        self.assertEqual(reloan_deduction(None), Decimal(0))

    def test_block_needs_same_product_and_ineligibility(self):
        blocked_customer = make_customer(reloan_eligibility=ReloanEligibility(is_eligible=False, progress=40))
        context = valid_context(customer=blocked_customer, active_loan_product_ids=[1])
        self.assertTrue(is_reloan_blocked(context, 1))
        self.assertFalse(is_reloan_blocked(context, 2))
        self.assertFalse(is_reloan_blocked(context, None))
        # An open loan with no eligibility data at all is treated as not eligible
        self.assertTrue(is_reloan_blocked(valid_context(active_loan_product_ids=[1]), 1))

    def test_block_details(self):
        customer = make_customer(reloan_eligibility=ReloanEligibility(
            is_eligible=False, progress=40, paid_weeks=19, total_weeks=48, balance=Decimal(72_000),
        ))
        context = valid_context(customer=customer, active_loan_product_ids=[1])
        block = reloan_block(context, 1, step=1, min_progress=0.8)
        self.assertEqual(block.step, 1)
        self.assertEqual(block.required_progress, 80)
        self.assertEqual(block.paid_weeks, 19)
        self.assertIn("min. 80% payment progress required", block.message)

    def test_locked_fields_follow_block(self):
        customer = make_customer(reloan_eligibility=ReloanEligibility(is_eligible=False, progress=40))
        context = valid_context(customer=customer, active_loan_product_ids=[1])
        self.assertEqual(locked_fields(context, 1), RELOAN_LOCKED_FIELDS)
        self.assertEqual(locked_fields(context, 2), frozenset())
        self.assertNotIn("product_id", RELOAN_LOCKED_FIELDS)


class TestGuarantors(unittest.TestCase):
    def test_first_two_other_members_in_order(self):
        g1, g2 = derive_guarantors(make_members(4), "C1")
        self.assertEqual(g1, Guarantor(name="Saman Kumara", nic="902345678V"))
        self.assertEqual(g2, Guarantor(name="Kamal Silva", nic="883456789V"))

    def test_applicant_anywhere_in_roster_is_skipped(self):
        g1, g2 = derive_guarantors(make_members(4), "C2")
        self.assertEqual((g1.name, g2.name), ("Nimal Perera", "Kamal Silva"))

    def test_inactive_members_are_skipped(self):
        members = make_members(4)
        members[1] = GroupMember(customer_id="C2", name="Saman Kumara", nic="902345678V", status="Inactive")
        g1, g2 = derive_guarantors(members, "C1")
        self.assertEqual((g1.name, g2.name), ("Kamal Silva", "Ruwan Fernando"))

    def test_shortfall(self):
        self.assertEqual(guarantor_shortfall(make_members(3), "C1"), 0)
        self.assertEqual(guarantor_shortfall(make_members(2), "C1"), 1)
        self.assertEqual(guarantor_shortfall(make_members(1), "C1"), 2)
        self.assertEqual(derive_guarantors(make_members(2), "C1")[1], None)
        self.assertEqual(derive_guarantors(make_members(3), ""), (None, None))


class TestProfileDocuments(unittest.TestCase):
    def test_profile_images_become_documents(self):
        customer = make_customer(nic_image="/img/nic.jpg", profile_image="/img/me.jpg")
        docs = merge_profile_documents((), customer)
        self.assertEqual([d.type for d in docs], ["NIC Copy", "Customer Photo"])
        self.assertTrue(all(d.from_profile for d in docs))

    def test_switching_customer_replaces_inherited_documents(self):
        uploaded = DocumentRef(type="Bank Statement", url="/docs/bank.pdf")
        first = merge_profile_documents((uploaded,), make_customer(nic_image="/img/a.jpg"))
        second = merge_profile_documents(first, make_customer(id="C2", profile_image="/img/b.jpg"))
        self.assertEqual([d.type for d in second], ["Bank Statement", "Customer Photo"])
        self.assertEqual(merge_profile_documents(second, None), (uploaded,))


if __name__ == "__main__":
    unittest.main()
