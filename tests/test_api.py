import io
from datetime import timedelta

import jwt
from openpyxl import load_workbook

import config
from utils import get_local_now


def _create_site(client, name="Obra Centro"):
    resp = client.post("/sites", json={"name": name, "address": "Av. Brasil, 500"})
    assert resp.status_code == 201
    return resp.json()["id"]


def _create_catalog_item(client, name="Cimento CP-II", category="Material Básico", unit="saco", **extra):
    payload = {"name": name, "unit": unit, "category": category, "unit_value": 32.5, **extra}
    resp = client.post("/catalog", json=payload)
    assert resp.status_code == 201
    return resp.json()


def _attach(client, site_id, catalog_item_id, **extra):
    return client.post(f"/sites/{site_id}/inventory", json={"catalog_item_id": catalog_item_id, **extra})


def test_catalog_codes_are_generated_incrementally(client):
    first = _create_catalog_item(client, name="Areia média")
    second = _create_catalog_item(client, name="Brita 1")
    assert first["code"] == "INS-00001"
    assert second["code"] == "INS-00002"

    duplicate = client.post("/catalog", json={"name": "Outra", "unit": "un", "code": "INS-00001"})
    assert duplicate.status_code == 409


def test_attach_copies_catalog_fields_and_books_initial_movement(client):
    site_id = _create_site(client)
    catalog = _create_catalog_item(client, min_threshold=5)

    resp = _attach(client, site_id, catalog["id"], quantity=100)
    assert resp.status_code == 201
    balance = resp.json()
    assert balance["name"] == "Cimento CP-II"
    assert balance["unit"] == "saco"
    assert balance["quantity"] == 100
    assert balance["min_threshold"] == 5
    assert balance["average_price"] == 32.5

    movements = client.get(f"/sites/{site_id}/inventory/{balance['id']}/movements").json()
    assert movements["total"] == 1
    assert movements["data"][0]["movement_type"] == "IN"


def test_catalog_edits_do_not_reach_existing_balances_until_resync(client):
    site_id = _create_site(client)
    catalog = _create_catalog_item(client)
    balance_id = _attach(client, site_id, catalog["id"]).json()["id"]

    client.put(f"/catalog/{catalog['id']}", json={"name": "Cimento CP-III", "unit": "saco 50kg"})
    assert client.get(f"/sites/{site_id}/inventory/{balance_id}").json()["name"] == "Cimento CP-II"

    resynced = client.post(f"/sites/{site_id}/inventory/{balance_id}/resync").json()
    assert resynced["name"] == "Cimento CP-III"
    assert resynced["unit"] == "saco 50kg"


def test_attaching_the_same_material_twice_conflicts(client):
    site_id = _create_site(client)
    catalog = _create_catalog_item(client)
    assert _attach(client, site_id, catalog["id"]).status_code == 201

    resp = _attach(client, site_id, catalog["id"])
    assert resp.status_code == 409
    assert "already attached" in resp.json()["detail"]


def test_movement_flow_and_insufficient_stock(client):
    site_id = _create_site(client)
    catalog = _create_catalog_item(client)
    balance_id = _attach(client, site_id, catalog["id"], quantity=100).json()["id"]
    base = f"/sites/{site_id}/inventory/{balance_id}"

    assert client.post(f"{base}/movements", json={"movement_type": "IN", "quantity": 50}).status_code == 201
    assert client.post(f"{base}/movements", json={"movement_type": "OUT", "quantity": 30}).status_code == 201
    assert client.get(base).json()["quantity"] == 120

    rejected = client.post(f"{base}/movements", json={"movement_type": "OUT", "quantity": 500})
    assert rejected.status_code == 400
    assert "Insufficient stock" in rejected.json()["detail"]
    assert client.get(base).json()["quantity"] == 120

    consistency = client.get(f"{base}/consistency").json()
    assert consistency == {"site_inventory_id": balance_id, "quantity": 120, "ledger_quantity": 120, "consistent": True}


def test_zero_or_negative_quantity_is_a_validation_error(client):
    site_id = _create_site(client)
    catalog = _create_catalog_item(client)
    balance_id = _attach(client, site_id, catalog["id"], quantity=1).json()["id"]

    resp = client.post(
        f"/sites/{site_id}/inventory/{balance_id}/movements", json={"movement_type": "IN", "quantity": 0}
    )
    assert resp.status_code == 422


def test_unknown_balance_is_404(client):
    site_id = _create_site(client)
    assert client.get(f"/sites/{site_id}/inventory/999").status_code == 404
    assert client.get("/sites/999/inventory").status_code == 404


def test_low_stock_listing(client):
    site_id = _create_site(client)
    low = _create_catalog_item(client, name="Prego 17x21", unit="kg")
    ok = _create_catalog_item(client, name="Tijolo", unit="milheiro")
    low_id = _attach(client, site_id, low["id"], quantity=10, min_threshold=20).json()["id"]
    _attach(client, site_id, ok["id"], quantity=10, min_threshold=2)

    alerts = client.get(f"/sites/{site_id}/inventory/low-stock").json()
    assert [item["id"] for item in alerts] == [low_id]
    assert alerts[0]["is_low_stock"] is True

    client.post(f"/sites/{site_id}/inventory/{low_id}/movements", json={"movement_type": "IN", "quantity": 15})
    assert client.get(f"/sites/{site_id}/inventory/low-stock").json() == []


def test_quantity_edit_goes_through_the_ledger(client):
    site_id = _create_site(client)
    catalog = _create_catalog_item(client)
    balance_id = _attach(client, site_id, catalog["id"], quantity=10).json()["id"]
    base = f"/sites/{site_id}/inventory/{balance_id}"

    updated = client.put(base, json={"quantity": 14, "reason": "Contagem física"}).json()
    assert updated["quantity"] == 14

    latest = client.get(f"{base}/movements").json()["data"][0]
    assert latest["category"] == "ADJUSTMENT"
    assert latest["movement_type"] == "IN"
    assert latest["quantity"] == 4
    assert client.get(f"{base}/consistency").json()["consistent"] is True


def test_tool_flag_is_tri_state_on_update(client):
    site_id = _create_site(client)
    catalog = _create_catalog_item(client, name="Nível a laser", category="Instrumentos", unit="un")
    balance_id = _attach(client, site_id, catalog["id"], quantity=1).json()["id"]
    base = f"/sites/{site_id}/inventory/{balance_id}"

    assert client.get(base).json()["is_tool_resolved"] is False
    assert client.put(base, json={"is_tool": True}).json()["is_tool"] is True
    # leaving the field out keeps the flag
    assert client.put(base, json={"min_threshold": 1}).json()["is_tool"] is True
    cleared = client.put(base, json={"is_tool": None}).json()
    assert cleared["is_tool"] is None
    assert cleared["is_tool_resolved"] is False


def test_loan_lifecycle_over_http(client):
    site_id = _create_site(client)
    catalog = _create_catalog_item(client, name="Furadeira de impacto", category="Ferramentas", unit="un")
    balance_id = _attach(client, site_id, catalog["id"], quantity=20).json()["id"]

    resp = client.post(
        f"/sites/{site_id}/loans",
        json={"site_inventory_id": balance_id, "borrower_name": "João Pedreiro", "quantity": 6},
    )
    assert resp.status_code == 201
    loan = resp.json()
    assert loan["status"] == "OPEN"
    assert client.get(f"/sites/{site_id}/inventory/{balance_id}").json()["available_quantity"] == 14

    tools = client.get(f"/sites/{site_id}/tools").json()
    assert tools[0]["available_quantity"] == 14

    too_many = client.post(
        f"/sites/{site_id}/loans",
        json={"site_inventory_id": balance_id, "borrower_name": "Ana", "quantity": 15},
    )
    assert too_many.status_code == 400

    returned = client.post(f"/sites/{site_id}/loans/{loan['id']}/return", json={"return_notes": "ok"})
    assert returned.status_code == 200
    assert returned.json()["status"] == "RETURNED"
    assert client.post(f"/sites/{site_id}/loans/{loan['id']}/return", json={}).status_code == 400

    balance = client.get(f"/sites/{site_id}/inventory/{balance_id}").json()
    assert balance["quantity"] == 20
    assert balance["available_quantity"] == 20
    assert client.get(f"/sites/{site_id}/loans", params={"status": "RETURNED"}).json()["total"] == 1


def test_loan_without_source_is_a_validation_error(client):
    site_id = _create_site(client)
    resp = client.post(f"/sites/{site_id}/loans", json={"borrower_name": "João", "quantity": 1})
    assert resp.status_code == 422


def test_overdue_loans_endpoint(client):
    site_id = _create_site(client)
    catalog = _create_catalog_item(client, name="Martelo", category="Ferramentas", unit="un")
    balance_id = _attach(client, site_id, catalog["id"], quantity=5).json()["id"]
    old_date = (get_local_now() - timedelta(days=4)).isoformat()
    client.post(
        f"/sites/{site_id}/loans",
        json={"site_inventory_id": balance_id, "borrower_name": "João", "quantity": 1, "loan_date": old_date},
    )
    client.post(f"/sites/{site_id}/loans", json={"site_inventory_id": balance_id, "borrower_name": "Ana", "quantity": 1})

    overdue = client.get(f"/sites/{site_id}/loans/overdue").json()
    assert [loan["borrower_name"] for loan in overdue] == ["João"]


def test_rented_equipment_over_http(client):
    site_id = _create_site(client)
    resp = client.post(
        f"/sites/{site_id}/rented-equipment",
        json={
            "name": "Andaime", "supplier": "Loca Tudo", "category": "Equipamento",
            "unit": "peça", "quantity": 4, "entry_photos": ["uploads/a.jpg"],
        },
    )
    assert resp.status_code == 201
    eq = resp.json()
    assert eq["status"] == "ACTIVE"
    assert eq["is_tool_resolved"] is True

    loan = client.post(
        f"/sites/{site_id}/loans",
        json={"rented_equipment_id": eq["id"], "borrower_name": "João", "quantity": 2},
    ).json()
    assert client.get(f"/sites/{site_id}/rented-equipment/{eq['id']}").json()["available_quantity"] == 2

    exited = client.post(f"/sites/{site_id}/rented-equipment/{eq['id']}/exit", json={"exit_photos": ["uploads/b.jpg"]})
    assert exited.json()["status"] == "RETURNED"
    assert client.post(f"/sites/{site_id}/rented-equipment/{eq['id']}/exit", json={}).status_code == 400

    refused = client.post(
        f"/sites/{site_id}/loans",
        json={"rented_equipment_id": eq["id"], "borrower_name": "Ana", "quantity": 1},
    )
    assert refused.status_code == 400
    assert client.post(f"/sites/{site_id}/loans/{loan['id']}/return").status_code == 200

    assert client.get(f"/sites/{site_id}/rented-equipment", params={"status": "ACTIVE"}).json()["total"] == 0
    assert client.get(f"/sites/{site_id}/rented-equipment").json()["total"] == 1


def test_rented_tool_flag_update(client):
    site_id = _create_site(client)
    eq = client.post(
        f"/sites/{site_id}/rented-equipment",
        json={"name": "Container", "supplier": "Loca Tudo", "category": "Estrutura", "unit": "un", "quantity": 1},
    ).json()
    assert eq["is_tool_resolved"] is False

    flagged = client.put(f"/sites/{site_id}/rented-equipment/{eq['id']}/tool-flag", json={"is_tool": True}).json()
    assert flagged["is_tool"] is True
    assert flagged["is_tool_resolved"] is True


def test_site_movements_merge_rented_events(client):
    site_id = _create_site(client)
    catalog = _create_catalog_item(client)
    balance_id = _attach(client, site_id, catalog["id"], quantity=10).json()["id"]
    client.post(f"/sites/{site_id}/inventory/{balance_id}/movements", json={"movement_type": "OUT", "quantity": 2})
    eq = client.post(
        f"/sites/{site_id}/rented-equipment",
        json={"name": "Betoneira", "supplier": "Loca Tudo", "category": "Máquinas", "unit": "un", "quantity": 1},
    ).json()
    client.post(f"/sites/{site_id}/rented-equipment/{eq['id']}/exit", json={})

    rows = client.get(f"/sites/{site_id}/movements").json()
    assert rows["total"] == 4
    reasons = {row["reason"] for row in rows["data"] if row["is_rented"]}
    assert reasons == {"Locação: Loca Tudo", "Devolução Locação"}
    assert rows["data"][0]["id"] == f"rent_out_{eq['id']}"

    owned_only = client.get(f"/sites/{site_id}/movements", params={"include_rented": False}).json()
    assert owned_only["total"] == 2


def test_epi_withdrawals_are_tagged_out_movements(client):
    site_id = _create_site(client)
    epi = _create_catalog_item(client, name="Capacete", category="EPI", unit="un")
    other = _create_catalog_item(client, name="Areia", category="Material Básico", unit="m3")
    epi_id = _attach(client, site_id, epi["id"], quantity=10).json()["id"]
    _attach(client, site_id, other["id"], quantity=10)

    items = client.get(f"/sites/{site_id}/epi/items").json()
    assert [item["id"] for item in items] == [epi_id]

    resp = client.post(
        f"/sites/{site_id}/epi/withdrawals",
        json={"site_inventory_id": epi_id, "collaborator_id": "c-7", "collaborator_name": "Carlos", "quantity": 3},
    )
    assert resp.status_code == 201
    movement = resp.json()
    assert movement["category"] == "EPI_WITHDRAWAL"
    assert movement["movement_type"] == "OUT"
    assert movement["actor_name"] == "Carlos"
    assert client.get(f"/sites/{site_id}/inventory/{epi_id}").json()["quantity"] == 7

    too_many = client.post(
        f"/sites/{site_id}/epi/withdrawals",
        json={"site_inventory_id": epi_id, "collaborator_id": "c-7", "collaborator_name": "Carlos", "quantity": 30},
    )
    assert too_many.status_code == 400

    history = client.get(f"/sites/{site_id}/epi/withdrawals", params={"collaborator_id": "c-7"}).json()
    assert history["total"] == 1
    assert history["data"][0]["item_name"] == "Capacete"
    assert client.get(f"/sites/{site_id}/epi/withdrawals", params={"collaborator_id": "other"}).json()["total"] == 0


def test_actor_comes_from_bearer_token(client):
    token = jwt.encode({"sub": "7", "un": "Paulo Mestre"}, config.JWT_SECRET_KEY, algorithm=config.ALGORITHM)
    headers = {"Authorization": f"Bearer {token}"}
    site_id = _create_site(client)
    catalog = _create_catalog_item(client)
    balance_id = _attach(client, site_id, catalog["id"], quantity=5).json()["id"]

    movement = client.post(
        f"/sites/{site_id}/inventory/{balance_id}/movements",
        json={"movement_type": "OUT", "quantity": 1},
        headers=headers,
    ).json()
    assert movement["actor_id"] == "7"
    assert movement["actor_name"] == "Paulo Mestre"

    anonymous = client.post(
        f"/sites/{site_id}/inventory/{balance_id}/movements", json={"movement_type": "OUT", "quantity": 1}
    ).json()
    assert anonymous["actor_name"] == "Sistema"


def test_audit_trail_records_ledger_writes(client):
    site_id = _create_site(client)
    catalog = _create_catalog_item(client)
    balance_id = _attach(client, site_id, catalog["id"], quantity=5).json()["id"]
    client.post(f"/sites/{site_id}/inventory/{balance_id}/movements", json={"movement_type": "OUT", "quantity": 1})

    trail = client.get("/audit", params={"entity_type": "STOCK_MOVEMENT", "entity_id": str(balance_id)}).json()
    assert trail["total"] == 1
    assert "OUT 1" in trail["data"][0]["description"]


def test_export_inventory_as_csv_and_xlsx(client):
    site_id = _create_site(client)
    catalog = _create_catalog_item(client)
    _attach(client, site_id, catalog["id"], quantity=12, min_threshold=20)

    csv_resp = client.get(f"/sites/{site_id}/export/inventory")
    assert csv_resp.status_code == 200
    assert csv_resp.headers["content-type"].startswith("text/csv")
    text = csv_resp.content.decode("utf-8-sig")
    assert text.splitlines()[0].startswith("Item,Categoria,Unidade")
    assert "Cimento CP-II" in text
    assert "Sim" in text

    xlsx_resp = client.get(f"/sites/{site_id}/export/movements", params={"format": "xlsx"})
    assert xlsx_resp.status_code == 200
    sheet = load_workbook(io.BytesIO(xlsx_resp.content)).active
    assert sheet.title == "Movements"
    assert sheet.cell(row=1, column=1).value == "Data/Hora"
    assert sheet.max_row == 2

    assert client.get(f"/sites/{site_id}/export/unknown").status_code == 404


def test_deleting_a_site_hides_it(client):
    site_id = _create_site(client)
    assert client.delete(f"/sites/{site_id}").status_code == 204
    assert client.get(f"/sites/{site_id}").status_code == 404
    assert client.get(f"/sites/{site_id}/inventory").status_code == 404


def test_quantities_beyond_four_decimal_places_are_validation_errors(client):
    site_id = _create_site(client)
    catalog = _create_catalog_item(client)
    balance_id = _attach(client, site_id, catalog["id"], quantity=5).json()["id"]

    resp = client.post(
        f"/sites/{site_id}/inventory/{balance_id}/movements",
        json={"movement_type": "IN", "quantity": "0.00001"},
    )
    assert resp.status_code == 422
    assert client.get(f"/sites/{site_id}/inventory/{balance_id}/movements").json()["total"] == 1

    other = _create_catalog_item(client, name="Areia")
    assert _attach(client, site_id, other["id"], quantity=1, average_price="1.23456").status_code == 422
    assert client.put(
        f"/sites/{site_id}/inventory/{balance_id}", json={"min_threshold": "0.12345"}
    ).status_code == 422


def test_epi_items_show_availability_net_of_open_loans(client):
    site_id = _create_site(client)
    epi = _create_catalog_item(client, name="Cinto de segurança", category="EPI", unit="un")
    balance_id = _attach(client, site_id, epi["id"], quantity=10).json()["id"]
    client.post(
        f"/sites/{site_id}/loans",
        json={"site_inventory_id": balance_id, "borrower_name": "João", "quantity": 4},
    )

    item = client.get(f"/sites/{site_id}/epi/items").json()[0]
    assert item["quantity"] == 10
    assert item["committed_quantity"] == 4
    assert item["available_quantity"] == 6


def test_deleted_site_rejects_ledger_writes(client):
    site_id = _create_site(client)
    catalog = _create_catalog_item(client, name="Luva", category="EPI", unit="par")
    balance_id = _attach(client, site_id, catalog["id"], quantity=10).json()["id"]
    base = f"/sites/{site_id}/inventory/{balance_id}"
    assert client.delete(f"/sites/{site_id}").status_code == 204

    assert client.post(f"{base}/movements", json={"movement_type": "OUT", "quantity": 2}).status_code == 404
    assert client.post(
        f"/sites/{site_id}/epi/withdrawals",
        json={"site_inventory_id": balance_id, "collaborator_id": "c-1", "collaborator_name": "Carlos", "quantity": 1},
    ).status_code == 404
    assert client.put(base, json={"quantity": 3}).status_code == 404
    assert client.get(base).status_code == 404
    assert client.get(f"{base}/movements").status_code == 404
    assert client.get(f"{base}/consistency").status_code == 404
    assert client.post(
        f"/sites/{site_id}/loans",
        json={"site_inventory_id": balance_id, "borrower_name": "João", "quantity": 1},
    ).status_code == 404


def test_site_overview_summarises_the_site(client):
    site_id = _create_site(client)
    cement = _create_catalog_item(client)
    drill = _create_catalog_item(client, name="Furadeira", category="Ferramentas", unit="un")
    cement_id = _attach(client, site_id, cement["id"], quantity=10, min_threshold=20).json()["id"]
    drill_id = _attach(client, site_id, drill["id"], quantity=2, average_price=100).json()["id"]
    client.post(
        f"/sites/{site_id}/rented-equipment",
        json={"name": "Andaime", "supplier": "Loca Tudo", "category": "Equipamento", "unit": "peça", "quantity": 4},
    )
    client.post(
        f"/sites/{site_id}/loans",
        json={"site_inventory_id": drill_id, "borrower_name": "João", "quantity": 1},
    )
    for _ in range(6):
        client.post(
            f"/sites/{site_id}/inventory/{cement_id}/movements", json={"movement_type": "OUT", "quantity": 1}
        )

    resp = client.get(f"/sites/{site_id}/overview")
    assert resp.status_code == 200
    overview = resp.json()
    assert overview["site_name"] == "Obra Centro"
    assert overview["item_count"] == 2
    # 4 x 32.5 + 2 x 100
    assert overview["stock_value"] == 330
    assert overview["low_stock_count"] == 1
    assert overview["low_stock_items"][0]["id"] == cement_id
    assert overview["active_rented_count"] == 1
    assert overview["open_loan_count"] == 1
    assert overview["overdue_loan_count"] == 0
    assert len(overview["recent_movements"]) == 7
    assert overview["recent_movements"][0]["site_inventory_id"] == cement_id

    assert client.get("/sites/999/overview").status_code == 404


def test_unknown_status_filters_are_validation_errors(client):
    site_id = _create_site(client)
    assert client.get(f"/sites/{site_id}/loans", params={"status": "LOST"}).status_code == 422
    assert client.get(f"/sites/{site_id}/rented-equipment", params={"status": "GONE"}).status_code == 422
    assert client.get(f"/sites/{site_id}/loans", params={"status": "ALL"}).status_code == 200
