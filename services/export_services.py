import io
from typing import Dict, List

import pandas as pd
from sqlalchemy.orm import Session

from services.ledger_services import LedgerService
from services.loan_services import LoanService
from services.site_inventory_services import SiteInventoryService, get_site

EXPORT_KINDS = ("inventory", "movements", "loans")

CSV_MEDIA_TYPE = "text/csv"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _enum_value(value):
    return getattr(value, "value", value)


class ExportService:
    """Flat, read-only projections of a site's ledger state."""

    def __init__(self, db: Session):
        self.db = db

    def inventory_frame(self, site_id: int) -> pd.DataFrame:
        rows: List[Dict] = []
        for item in SiteInventoryService(self.db).list_inventory(site_id):
            rows.append({
                "Item": item["name"],
                "Categoria": item["category"],
                "Unidade": item["unit"],
                "Quantidade": float(item["quantity"]),
                "Emprestado": float(item["committed_quantity"]),
                "Disponível": float(item["available_quantity"]),
                "Estoque Mínimo": float(item["min_threshold"]),
                "Preço Médio": float(item["average_price"]),
                "Estoque Baixo": "Sim" if item["is_low_stock"] else "Não",
            })
        return pd.DataFrame(rows, columns=[
            "Item", "Categoria", "Unidade", "Quantidade", "Emprestado", "Disponível",
            "Estoque Mínimo", "Preço Médio", "Estoque Baixo",
        ])

    def movements_frame(self, site_id: int) -> pd.DataFrame:
        ledger = LedgerService(self.db)
        _, total = ledger.list_site_movements(site_id, limit=0)
        movements, _ = ledger.list_site_movements(site_id, limit=total)
        rows = [
            {
                "Data/Hora": m["movement_date"].strftime("%d/%m/%Y %H:%M:%S"),
                "Origem": "Locado" if m["is_rented"] else "Estoque",
                "Tipo": "Entrada" if _enum_value(m["movement_type"]) == "IN" else "Saída",
                "Item": m["item_name"],
                "Unidade": m["item_unit"],
                "Quantidade": float(m["quantity"]),
                "Usuário": m["actor_name"],
                "Motivo": m["reason"] or "",
            }
            for m in movements
        ]
        return pd.DataFrame(rows, columns=[
            "Data/Hora", "Origem", "Tipo", "Item", "Unidade", "Quantidade", "Usuário", "Motivo",
        ])

    def loans_frame(self, site_id: int) -> pd.DataFrame:
        get_site(self.db, site_id)
        service = LoanService(self.db)
        _, total = service.list_history(site_id, limit=0)
        loans, _ = service.list_history(site_id, limit=total)
        rows = [
            {
                "Item": loan.item_name,
                "Origem": _enum_value(loan.item_origin),
                "Responsável": loan.borrower_name,
                "Quantidade": float(loan.quantity),
                "Data Empréstimo": loan.loan_date.strftime("%d/%m/%Y %H:%M"),
                "Data Devolução": loan.return_date.strftime("%d/%m/%Y %H:%M") if loan.return_date else "",
                "Status": _enum_value(loan.status),
                "Observações": loan.notes or "",
            }
            for loan in loans
        ]
        return pd.DataFrame(rows, columns=[
            "Item", "Origem", "Responsável", "Quantidade", "Data Empréstimo", "Data Devolução",
            "Status", "Observações",
        ])

    def build(self, kind: str, site_id: int) -> pd.DataFrame:
        builders = {
            "inventory": self.inventory_frame,
            "movements": self.movements_frame,
            "loans": self.loans_frame,
        }
        return builders[kind](site_id)

    @staticmethod
    def to_csv_bytes(df: pd.DataFrame) -> io.BytesIO:
        output = io.BytesIO()
        # BOM so spreadsheet apps pick up the accents
        output.write(df.to_csv(index=False).encode("utf-8-sig"))
        output.seek(0)
        return output

    @staticmethod
    def to_xlsx_bytes(df: pd.DataFrame, sheet_name: str) -> io.BytesIO:
        output = io.BytesIO()
        with pd.ExcelWriter(output, engine="openpyxl") as writer:
            df.to_excel(writer, index=False, sheet_name=sheet_name)
            worksheet = writer.sheets[sheet_name]
            for column in worksheet.columns:
                max_length = max((len(str(cell.value)) for cell in column if cell.value is not None), default=0)
                worksheet.column_dimensions[column[0].column_letter].width = min(max_length + 2, 50)
        output.seek(0)
        return output
