from datetime import date

from csv_utils import (
    detect_delimiter,
    export_transactions,
    parse_number,
    parse_statement_csv,
    sanitize_csv_value,
)
from models import AccountType, CategorySubtype, Transaction, TransactionSplit, TransactionType
from ofx_utils import parse_ofx
from schemas import ImportKind

OFX_SAMPLE = """OFXHEADER:100
DATA:OFXSGML
<OFX>
<BANKMSGSRSV1><STMTTRNRS><STMTRS><BANKTRANLIST>
<STMTTRN>
<TRNTYPE>DEBIT
<DTPOSTED>20250305120000[-3:BRT]
<TRNAMT>-89.90
<FITID>123
<MEMO>UBER * TRIP 03/06
</STMTTRN>
<STMTTRN>
<TRNTYPE>CREDIT
<DTPOSTED>20250306
<TRNAMT>500,00
<FITID>124
<MEMO>Pagamento recebido
</STMTTRN>
<STMTTRN>
<TRNTYPE>DEBIT
<DTPOSTED>abc
<TRNAMT>-10.00
<FITID>125
<MEMO>Broken date
</STMTTRN>
<STMTTRN><TRNTYPE>DEP</TRNTYPE><DTPOSTED>20250310</DTPOSTED><TRNAMT>1500.00</TRNAMT><FITID>126</FITID><NAME>Salario ACME</NAME></STMTTRN>
<STMTTRN>
<TRNTYPE>DEBIT
<DTPOSTED>20250311
<TRNAMT>-12.30
</STMTTRN>
</BANKTRANLIST></STMTRS></STMTTRNRS></BANKMSGSRSV1>
</OFX>
"""


def test_parse_ofx_reads_uber_example() -> None:
    entries, errors = parse_ofx(OFX_SAMPLE)

    uber = entries[0]
    assert uber.date == date(2025, 3, 5)
    assert uber.amount_cents == 8990
    assert uber.type == TransactionType.expense
    assert uber.fitid == "123"
    assert uber.description == "UBER * TRIP 03/06"
    assert uber.installment is not None
    assert (uber.installment.current, uber.installment.total) == (3, 6)
    assert uber.installment.remaining_to_generate == 4
    assert errors == ["Block 3: Invalid DTPOSTED 'abc'"]


def test_parse_ofx_drops_card_payment_and_reads_xml_tags() -> None:
    entries, _ = parse_ofx(OFX_SAMPLE)

    descriptions = [entry.description for entry in entries]
    assert "Pagamento recebido" not in descriptions
    salary = entries[1]
    assert salary.description == "Salario ACME"
    assert salary.type == TransactionType.income
    assert salary.amount_cents == 150_000
    assert salary.fitid == "126"


def test_parse_ofx_defaults_missing_memo_and_fitid() -> None:
    entries, _ = parse_ofx(OFX_SAMPLE)

    last = entries[-1]
    assert last.description == "Movimentação OFX"
    assert last.fitid is None
    assert last.amount_cents == 1230


def test_parse_ofx_without_blocks_is_empty() -> None:
    assert parse_ofx("not an ofx file") == ([], [])


def test_parse_ofx_skips_block_with_oversized_memo() -> None:
    long_memo = "COMPRA " + "X" * 300
    content = (
        "<STMTTRN><TRNTYPE>DEBIT<DTPOSTED>20250305<TRNAMT>-10.00<MEMO>Padaria</STMTTRN>\n"
        f"<STMTTRN><TRNTYPE>DEBIT<DTPOSTED>20250306<TRNAMT>-20.00<MEMO>{long_memo}</STMTTRN>\n"
    )
    entries, errors = parse_ofx(content)

    assert [entry.description for entry in entries] == ["Padaria"]
    assert len(errors) == 1
    assert errors[0].startswith("Block 2:")


def test_parse_statement_csv_rejects_split_mismatch() -> None:
    rows, errors = parse_statement_csv(
        "Data;Descricao;Valor\n2025-03-01;Mercado;100,00;DESPESA;Casa: 10; Lazer: 20\n",
        ImportKind.transactions,
    )
    assert rows == []
    assert errors == ["Row 1: Split total 30.00 does not match amount 100.00"]


def test_parse_number_guesses_decimal_separator() -> None:
    assert str(parse_number("1.234,56")) == "1234.56"
    assert str(parse_number("89,90")) == "89.90"
    assert str(parse_number("89.90")) == "89.90"
    assert str(parse_number("")) == "0"


def test_detect_delimiter_uses_header_line() -> None:
    assert detect_delimiter("Data;Descricao\n2025-01-01,x") == ";"
    assert detect_delimiter("Data,Descricao\n2025-01-01;x") == ","


CSV_TRANSACTIONS = """Data;Descricao;Valor;Tipo;Categoria
2025-10-01;Supermercado Compra;150,50;DESPESA;alimentação
2025-10-15;Compra Mista;200.00;DESPESA;Alimentação: 100; Lazer: 100
2025-10-20;Apenas um;50;DESPESA;Lazer: 50;

bad-date;X;10;DESPESA;
2025-10-05;Salário;1.234,56;RECEITA;
2025-10-21;Loja Parcela 2/5;80,00;DESPESA;Compras
"""


def test_parse_statement_csv_transactions() -> None:
    rows, errors = parse_statement_csv(
        CSV_TRANSACTIONS,
        ImportKind.transactions,
        known_categories=["Alimentação", "Lazer"],
    )

    assert errors == ["Row 5: Invalid date 'bad-date', expected YYYY-MM-DD"]
    assert len(rows) == 5

    groceries = rows[0]
    assert groceries.amount_cents == 15_050
    assert groceries.category == "Alimentação"
    assert groceries.type == TransactionType.expense

    mixed = rows[1]
    assert mixed.category == "Múltiplas Categorias"
    assert [(s.category_name, s.amount_cents) for s in mixed.splits] == [
        ("Alimentação", 10_000),
        ("Lazer", 10_000),
    ]

    single = rows[2]
    assert single.category == "Lazer"
    assert single.splits == []

    salary = rows[3]
    assert salary.type == TransactionType.income
    assert salary.amount_cents == 123_456
    assert salary.category is None

    installment = rows[4]
    assert installment.installment is not None
    assert installment.installment.remaining_to_generate == 4


def test_parse_statement_csv_categories() -> None:
    content = (
        "Nome,Tipo,Subtipo,Impacta\n"
        "Academia,DESPESA,FIXA,SIM\n"
        "Dividendos,RECEITA,VARIAVEL,NAO\n"
        ",DESPESA,FIXA,SIM\n"
    )
    rows, errors = parse_statement_csv(content, ImportKind.categories)

    assert errors == ["Row 3: Name is required"]
    assert [row.name for row in rows] == ["Academia", "Dividendos"]
    assert rows[0].subtype == CategorySubtype.fixed
    assert rows[0].impacts_budget is True
    assert rows[1].type == TransactionType.income
    assert rows[1].impacts_budget is False


def test_parse_statement_csv_accounts() -> None:
    content = (
        "Nome;Tipo;Saldo;Fechamento;Vencimento\n"
        "Nubank;BANCO;1250,00;;\n"
        "Visa;CARTAO;;5;12\n"
        "Quebrado;CARTAO;;;\n"
    )
    rows, errors = parse_statement_csv(content, ImportKind.accounts)

    assert errors == ["Row 3: Credit cards need closing and due days"]
    bank, card = rows
    assert bank.type == AccountType.bank
    assert bank.initial_balance_cents == 125_000
    assert bank.closing_day is None
    assert card.type == AccountType.credit_card
    assert (card.closing_day, card.due_day) == (5, 12)
    assert card.initial_balance_cents == 0


def test_sanitize_csv_value_prefixes_formulas() -> None:
    assert sanitize_csv_value("=SUM(A1)") == "\t=SUM(A1)"
    assert sanitize_csv_value("  Mercado ") == "Mercado"
    assert sanitize_csv_value("") == ""


def test_export_transactions_writes_split_spec() -> None:
    txn = Transaction(
        id="t1",
        description="Compra Mista",
        amount_cents=20_000,
        date=date(2025, 10, 15),
        type=TransactionType.expense,
        category="Múltiplas Categorias",
        splits=[
            TransactionSplit(position=0, category_name="Alimentação", amount_cents=12_000),
            TransactionSplit(position=1, category_name="Lazer", amount_cents=8_000),
        ],
    )
    output = export_transactions([txn])

    lines = output.strip().splitlines()
    assert lines[0] == "Data;Descricao;Valor;Tipo;Categoria"
    assert lines[1] == '2025-10-15;Compra Mista;200.00;DESPESA;"Alimentação: 120.00; Lazer: 80.00"'

    rows, errors = parse_statement_csv(output, ImportKind.transactions)
    assert errors == []
    assert [s.amount_cents for s in rows[0].splits] == [12_000, 8_000]
