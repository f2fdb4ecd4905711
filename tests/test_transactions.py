from datetime import date

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from database import Base
from errors import SplitValidationError, StateConflictError
from models import Account, AccountType, Budget, Category, Transaction, TransactionSplit, TransactionType
from schemas import AccountIn, CategoryIn, SplitIn, TransactionIn, TransactionUpdateIn
from services import AccountService, CategoryService, TransactionService

TODAY = date(2025, 3, 20)


def _setup(session: Session) -> None:
    session.add_all(
        [
            Account(id="bank", name="Conta", type=AccountType.bank, initial_balance_cents=0),
            Account(
                id="card",
                name="Nubank",
                type=AccountType.credit_card,
                initial_balance_cents=0,
                closing_day=3,
                due_day=10,
            ),
        ]
    )
    session.commit()


def _count(session: Session, model=Transaction) -> int:
    return session.scalar(select(func.count()).select_from(model))


def _update(**overrides) -> TransactionUpdateIn:
    values = {
        "description": "Mercado",
        "amount_cents": 10_000,
        "date": date(2025, 3, 10),
        "type": TransactionType.expense,
        "category": "Alimentação",
        "account_id": "bank",
    }
    values.update(overrides)
    return TransactionUpdateIn(**values)


def test_split_mismatch_is_rejected() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _setup(session)
        service = TransactionService(session, today=TODAY)

        with pytest.raises(SplitValidationError):
            service.create(
                TransactionIn(
                    description="Feira",
                    amount_cents=10_000,
                    type=TransactionType.expense,
                    account_id="bank",
                    splits=[
                        SplitIn(category_name="Alimentação", amount_cents=6_000),
                        SplitIn(category_name="Casa", amount_cents=3_000),
                    ],
                )
            )
        assert _count(session) == 0


def test_bank_installments_only_first_applied() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _setup(session)
        rows = TransactionService(session, today=TODAY).create(
            TransactionIn(
                description="Curso",
                amount_cents=30_000,
                date=date(2025, 1, 31),
                type=TransactionType.expense,
                category="Educação",
                account_id="bank",
                installments=3,
            )
        )

        assert [row.date for row in rows] == [date(2025, 1, 31), date(2025, 2, 28), date(2025, 3, 31)]
        assert [row.is_applied for row in rows] == [True, False, False]
        assert len({row.batch_id for row in rows}) == 1
        assert _count(session) == 3


def test_invoice_month_requires_card() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _setup(session)
        service = TransactionService(session, today=TODAY)

        with pytest.raises(ValueError, match="only valid for credit card"):
            service.create(
                TransactionIn(
                    description="Mercado",
                    amount_cents=1_000,
                    type=TransactionType.expense,
                    account_id="bank",
                    invoice_month="03/2025",
                )
            )
        with pytest.raises(ValueError, match="Account not found"):
            service.create(
                TransactionIn(
                    description="Mercado",
                    amount_cents=1_000,
                    type=TransactionType.expense,
                    account_id="missing",
                )
            )


def test_update_replaces_splits() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _setup(session)
        service = TransactionService(session, today=TODAY)
        (txn,) = service.create(
            TransactionIn(
                description="Mercado",
                amount_cents=10_000,
                type=TransactionType.expense,
                category="Alimentação",
                account_id="bank",
            )
        )

        updated = service.update(
            txn.id,
            _update(
                splits=[
                    SplitIn(category_name="Alimentação", amount_cents=7_000),
                    SplitIn(category_name="Limpeza", amount_cents=3_000),
                ]
            ),
        )
        assert updated.category == "Múltiplas Categorias"
        assert [split.category_name for split in updated.splits] == ["Alimentação", "Limpeza"]

        updated = service.update(txn.id, _update(category="Casa"))
        assert updated.category == "Casa"
        assert updated.splits == []
        assert _count(session, TransactionSplit) == 0

        with pytest.raises(ValueError, match="Transaction not found"):
            service.update("missing", _update())


def test_update_installments_keeps_each_bucket() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _setup(session)
        service = TransactionService(session, today=TODAY)
        rows = service.create(
            TransactionIn(
                description="TV",
                amount_cents=30_000,
                type=TransactionType.expense,
                account_id="card",
                invoice_month="04/2025",
                installments=3,
            )
        )

        service.update_installments(
            rows[1].id,
            _update(
                description="TV 55",
                amount_cents=31_000,
                category="Eletrônicos",
                account_id="card",
                invoice_month="05/2025",
            ),
        )

        stored = session.scalars(
            select(Transaction).order_by(Transaction.installment_number)
        ).all()
        assert {txn.description for txn in stored} == {"TV 55"}
        assert {txn.amount_cents for txn in stored} == {31_000}
        assert [txn.invoice_month for txn in stored] == ["04/2025", "05/2025", "06/2025"]


def test_toggle_and_delete() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _setup(session)
        service = TransactionService(session, today=TODAY)
        rows = service.create(
            TransactionIn(
                description="Aluguel",
                amount_cents=200_000,
                date=date(2025, 3, 5),
                type=TransactionType.expense,
                account_id="bank",
                installments=2,
            )
        )
        ids = [row.id for row in rows]

        toggled = service.toggle_status(ids)
        assert {txn.id: txn.is_applied for txn in toggled} == {ids[0]: False, ids[1]: True}

        with pytest.raises(ValueError, match="Transaction not found: missing"):
            service.delete_batch([ids[0], "missing"])
        assert _count(session) == 2

        assert service.delete_batch(ids) == 2
        assert _count(session) == 0


def test_invoice_payment_description_is_guarded_on_update() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _setup(session)
        session.add_all(
            [
                Transaction(
                    id="payment",
                    description="Fatura Nubank - 03/2025",
                    amount_cents=50_000,
                    date=date(2025, 3, 10),
                    type=TransactionType.expense,
                    category="Pagamento Fatura",
                    is_applied=False,
                ),
                Transaction(
                    id="grocery",
                    description="Mercado",
                    amount_cents=10_000,
                    date=date(2025, 3, 10),
                    type=TransactionType.expense,
                    category="Alimentação",
                    account_id="bank",
                ),
            ]
        )
        session.commit()
        service = TransactionService(session, today=TODAY)

        with pytest.raises(StateConflictError, match="reserved"):
            service.update("grocery", _update(description="Fatura Nubank - 04/2025"))
        with pytest.raises(StateConflictError, match="reopen the invoice"):
            service.update(
                "payment",
                _update(description="Boleto", category="Pagamento Fatura", account_id=None),
            )
        assert service.get("payment").description == "Fatura Nubank - 03/2025"

        settled = service.update(
            "payment",
            _update(
                description="Fatura Nubank - 03/2025",
                amount_cents=52_000,
                category="Pagamento Fatura",
                account_id=None,
            ),
        )
        assert settled.amount_cents == 52_000


def test_category_lifecycle() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _setup(session)
        categories = CategoryService(session)
        food = categories.create(CategoryIn(name="Alimentação", type=TransactionType.expense))
        spare = categories.create(CategoryIn(name="Sobra", type=TransactionType.expense))

        with pytest.raises(ValueError, match="already exists"):
            categories.create(CategoryIn(name="alimentação", type=TransactionType.expense))

        TransactionService(session, today=TODAY).create(
            TransactionIn(
                description="Feira",
                amount_cents=1_000,
                type=TransactionType.expense,
                account_id="bank",
                splits=[SplitIn(category_name="Alimentação", amount_cents=1_000)],
            )
        )
        with pytest.raises(ValueError, match="used in transactions"):
            categories.delete(food.id)

        session.add(Budget(id="b1", category_id=spare.id, month=0, year=2025, amount_cents=1))
        session.commit()
        with pytest.raises(ValueError, match="used in budgets"):
            categories.delete(spare.id)

        with pytest.raises(ValueError, match="Category not found"):
            categories.delete("missing")


def test_account_defaults_and_delete() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        accounts = AccountService(session)
        first = accounts.create(AccountIn(name="Conta A", type=AccountType.bank, is_default=True))
        second = accounts.create(AccountIn(name="Conta B", type=AccountType.bank, is_default=True))
        card = accounts.create(
            AccountIn(
                name="Visa",
                type=AccountType.credit_card,
                initial_balance_cents=5_000,
                closing_day=5,
                due_day=12,
                is_default=True,
            )
        )

        session.refresh(first)
        assert first.is_default is False
        assert second.is_default is True
        assert card.is_default is True
        assert card.initial_balance_cents == 0

        TransactionService(session, today=TODAY).create(
            TransactionIn(
                description="Pix",
                amount_cents=1_000,
                type=TransactionType.expense,
                account_id=second.id,
            )
        )
        with pytest.raises(ValueError, match="with transactions"):
            accounts.delete(second.id)
        accounts.delete(first.id)
        assert [account.name for account in accounts.list_all()] == ["Conta B", "Visa"]
