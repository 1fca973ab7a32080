"""
Typed views over stored-function rows.

Raw rows use the database column names (``cassa_in``, ``total_entrate``,
``imponibile`` ...); every numeric field is coerced through
``gestionale.utils.coercion`` so NULLs, numeric strings and non-finite values
never leak into responses.
"""
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from gestionale.utils.coercion import round2, to_count, to_iso_date_or_none, to_number, to_optional_number


class ReportModel(BaseModel):
    """Serialized in camelCase; accepts raw column names or field names on input."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FinancialStatementRow(ReportModel):
    date: Optional[str] = None
    description: Optional[str] = None
    account_code: Optional[str] = Field(default=None, validation_alias=AliasChoices("conto", "account_code"))
    nature: Optional[str] = None
    cash_in: float = Field(default=0.0, validation_alias=AliasChoices("cassa_in", "cash_in"))
    cash_out: float = Field(default=0.0, validation_alias=AliasChoices("cassa_out", "cash_out"))
    bank_in: float = Field(default=0.0, validation_alias=AliasChoices("banca_in", "bank_in"))
    bank_out: float = Field(default=0.0, validation_alias=AliasChoices("banca_out", "bank_out"))

    @field_validator("date", mode="before")
    @classmethod
    def _iso_date(cls, value: Any) -> Optional[str]:
        return to_iso_date_or_none(value)

    @field_validator("cash_in", "cash_out", "bank_in", "bank_out", mode="before")
    @classmethod
    def _number(cls, value: Any) -> float:
        return to_number(value)


class CashBankRecap(ReportModel):
    cash_in: float = 0.0
    cash_out: float = 0.0
    bank_in: float = 0.0
    bank_out: float = 0.0
    cash_balance: float = 0.0
    bank_balance: float = 0.0

    @classmethod
    def from_rows(cls, rows: List[FinancialStatementRow]) -> "CashBankRecap":
        cash_in = round2(sum(row.cash_in for row in rows))
        cash_out = round2(sum(row.cash_out for row in rows))
        bank_in = round2(sum(row.bank_in for row in rows))
        bank_out = round2(sum(row.bank_out for row in rows))
        return cls(
            cash_in=cash_in,
            cash_out=cash_out,
            bank_in=bank_in,
            bank_out=bank_out,
            cash_balance=round2(cash_in - cash_out),
            bank_balance=round2(bank_in - bank_out),
        )


class OperatingResultRow(ReportModel):
    account_code: Optional[str] = None
    account_name: Optional[str] = None
    nature: Optional[str] = None
    income: float = Field(default=0.0, validation_alias=AliasChoices("entrate", "income"))
    expenses: float = Field(default=0.0, validation_alias=AliasChoices("uscite", "expenses"))

    @field_validator("income", "expenses", mode="before")
    @classmethod
    def _money(cls, value: Any) -> float:
        return round2(value)


class GlobalTotals(ReportModel):
    total_income: float = Field(default=0.0, validation_alias=AliasChoices("total_entrate", "total_income"))
    total_expenses: float = Field(default=0.0, validation_alias=AliasChoices("total_uscite", "total_expenses"))
    balance: float = Field(default=0.0, validation_alias=AliasChoices("saldo", "balance"))
    total_vat: float = 0.0

    @field_validator("total_income", "total_expenses", "balance", "total_vat", mode="before")
    @classmethod
    def _money(cls, value: Any) -> float:
        return round2(value)


class VatSummaryRow(ReportModel):
    month: Optional[str] = None
    nature: Optional[str] = None
    vat_rate: Optional[float] = None
    taxable: float = Field(default=0.0, validation_alias=AliasChoices("imponibile", "taxable"))
    vat: float = Field(default=0.0, validation_alias=AliasChoices("iva", "vat"))
    total: float = Field(default=0.0, validation_alias=AliasChoices("totale", "total"))
    count: int = 0

    @field_validator("month", mode="before")
    @classmethod
    def _month(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value)

    @field_validator("vat_rate", mode="before")
    @classmethod
    def _rate(cls, value: Any) -> Optional[float]:
        return to_optional_number(value)

    @field_validator("taxable", "vat", "total", mode="before")
    @classmethod
    def _money(cls, value: Any) -> float:
        return round2(value)

    @field_validator("count", mode="before")
    @classmethod
    def _count(cls, value: Any) -> int:
        return to_count(value)


class VatDetailRow(VatSummaryRow):
    account_code: Optional[str] = None
    account_name: Optional[str] = None


class VatTotals(ReportModel):
    taxable: float = 0.0
    vat: float = 0.0
    total: float = 0.0
    count: int = 0

    @classmethod
    def from_rows(cls, rows: List[VatSummaryRow]) -> "VatTotals":
        return cls(
            taxable=round2(sum(row.taxable for row in rows)),
            vat=round2(sum(row.vat for row in rows)),
            total=round2(sum(row.total for row in rows)),
            count=sum(row.count for row in rows),
        )


class BarItem(ReportModel):
    label: Optional[str] = None
    amount: float = 0.0
    count: int = 0

    @field_validator("amount", mode="before")
    @classmethod
    def _money(cls, value: Any) -> float:
        return round2(value)

    @field_validator("count", mode="before")
    @classmethod
    def _count(cls, value: Any) -> int:
        return to_count(value)


class ReportPeriod(ReportModel):
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    account_codes: Optional[List[str]] = None


class FinancialStatement(ReportModel):
    rows: List[FinancialStatementRow]
    recap: CashBankRecap


class OperatingResult(ReportModel):
    rows: List[OperatingResultRow]


class FullReport(ReportModel):
    financial_statement: FinancialStatement
    operating_result: OperatingResult
    global_totals: GlobalTotals
    meta: ReportPeriod


class VatReport(ReportModel):
    summary_rows: List[VatSummaryRow]
    detail_rows: List[VatDetailRow]
    totals: VatTotals
    meta: ReportPeriod


class AdminDashboard(ReportModel):
    total_income: float = 0.0
    total_expenses: float = 0.0
    balance: float = 0.0
    total_vat: float = 0.0
    total_movements: int = 0


class ReportSummary(GlobalTotals):
    meta: ReportPeriod
