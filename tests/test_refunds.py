import uuid

import pytest

from refund.services import total_pages

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
MISSING_RECEIPT = "0123456789abcdef0123-receipt.png"


def _upload(client, headers):
    resp = client.post(
        "/uploads", files={"file": ("recibo.png", PNG, "image/png")}, headers=headers
    )
    assert resp.status_code == 200
    return resp.json()["filename"]


def _create(client, headers, name="Almoço com cliente", amount=42.5, filename=None):
    if filename is None:
        filename = _upload(client, headers)
    return client.post(
        "/refunds",
        json={"name": name, "category": "food", "amount": amount, "filename": filename},
        headers=headers,
    )


@pytest.mark.parametrize(
    "total,per_page,expected",
    [(0, 10, 1), (1, 10, 1), (10, 10, 1), (11, 10, 2), (25, 5, 5), (3, 2, 2)],
)
def test_total_pages(total, per_page, expected):
    assert total_pages(total, per_page) == expected


def test_create_refund(client, login):
    headers, user = login()
    filename = _upload(client, headers)
    resp = _create(client, headers, filename=filename)
    assert resp.status_code == 201
    refund = resp.json()["refund"]
    assert refund["name"] == "Almoço com cliente"
    assert refund["category"] == "food"
    assert refund["amount"] == 42.5
    assert refund["filename"] == filename
    assert refund["userId"] == user["id"]
    assert "createdAt" in refund


def test_create_refund_requires_employee(client, login):
    headers, _ = login(role="manager")
    assert _create(client, headers, filename=MISSING_RECEIPT).status_code == 401


def test_create_refund_requires_persisted_receipt(client, login, tmp_path):
    headers, _ = login()
    resp = _create(client, headers, filename=MISSING_RECEIPT)
    assert resp.status_code == 400
    assert resp.json() == {"message": "Arquivo não encontrado"}

    # A file still waiting in temporary storage does not count either.
    (tmp_path / "tmp" / MISSING_RECEIPT).write_bytes(PNG)
    resp = _create(client, headers, filename=MISSING_RECEIPT)
    assert resp.status_code == 400


@pytest.mark.parametrize("amount", ["NaN", "Infinity", "-Infinity", "1e999"])
def test_create_refund_rejects_non_finite_amount(client, login, amount):
    headers, _ = login()
    filename = _upload(client, headers)
    body = (
        '{"name": "Hotel", "category": "accommodation", '
        f'"amount": {amount}, "filename": "{filename}"}}'
    )
    resp = client.post(
        "/refunds",
        content=body,
        headers={**headers, "Content-Type": "application/json"},
    )
    assert resp.status_code == 400
    assert resp.json()["issues"]["properties"]["amount"]["errors"] == [
        "O valor precisa ser positivo"
    ]


def test_create_refund_validation(client, login):
    headers, _ = login()
    resp = client.post(
        "/refunds",
        json={"name": "", "category": "gifts", "amount": -1, "filename": "short.png"},
        headers=headers,
    )
    assert resp.status_code == 400
    properties = resp.json()["issues"]["properties"]
    assert properties["name"]["errors"] == ["Informe o nome da solicitação"]
    assert properties["amount"]["errors"] == ["O valor precisa ser positivo"]
    assert set(properties) == {"name", "category", "amount", "filename"}


def test_list_refunds_paginates(client, login):
    employee, _ = login(name="Carlos Pereira")
    for i in range(3):
        assert _create(client, employee, name=f"Despesa {i}").status_code == 201
    manager, _ = login(name="Gerente", role="manager")

    resp = client.get("/refunds", params={"page": 1, "perPage": 2}, headers=manager)
    assert resp.status_code == 200
    data = resp.json()
    assert len(data["refunds"]) == 2
    assert data["pagination"] == {
        "page": 1,
        "perPage": 2,
        "totalRecords": 3,
        "totalPages": 2,
    }
    assert data["refunds"][0]["user"] == {"name": "Carlos Pereira"}

    resp = client.get("/refunds", params={"page": 2, "perPage": 2}, headers=manager)
    assert len(resp.json()["refunds"]) == 1


def test_list_refunds_empty_has_one_page(client, login):
    manager, _ = login(role="manager")
    resp = client.get("/refunds", headers=manager)
    assert resp.json() == {
        "refunds": [],
        "pagination": {"page": 1, "perPage": 10, "totalRecords": 0, "totalPages": 1},
    }


def test_list_refunds_filters_by_owner_name(client, login):
    carlos, _ = login(name="Carlos Pereira")
    bruna, _ = login(name="Bruna Costa")
    _create(client, carlos)
    _create(client, bruna)
    manager, _ = login(name="Gerente", role="manager")

    resp = client.get("/refunds", params={"name": "bruna"}, headers=manager)
    data = resp.json()
    assert data["pagination"]["totalRecords"] == 1
    assert data["refunds"][0]["user"]["name"] == "Bruna Costa"


def test_list_refunds_requires_manager(client, login):
    employee, _ = login()
    assert client.get("/refunds", headers=employee).status_code == 401


def test_list_refunds_rejects_invalid_page(client, login):
    manager, _ = login(role="manager")
    resp = client.get("/refunds", params={"page": 0}, headers=manager)
    assert resp.status_code == 400


def test_show_refund(client, login):
    employee, user = login(name="Carlos Pereira")
    refund_id = _create(client, employee).json()["refund"]["id"]
    manager, _ = login(role="manager")

    for headers in (employee, manager):
        resp = client.get(f"/refunds/{refund_id}", headers=headers)
        assert resp.status_code == 200
        refund = resp.json()["refund"]
        assert refund["id"] == refund_id
        assert refund["userId"] == user["id"]
        assert refund["user"] == {"name": "Carlos Pereira"}


def test_show_missing_refund_is_null(client, login):
    headers, _ = login(role="manager")
    resp = client.get(f"/refunds/{uuid.uuid4()}", headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"refund": None}


def test_show_refund_requires_uuid(client, login):
    headers, _ = login(role="manager")
    resp = client.get("/refunds/123", headers=headers)
    assert resp.status_code == 400
    assert "refund_id" in resp.json()["issues"]["properties"]


def test_employee_cannot_read_other_refund(client, login):
    owner, _ = login(name="Carlos Pereira")
    refund_id = _create(client, owner).json()["refund"]["id"]
    other, _ = login(name="Bruna Costa")
    resp = client.get(f"/refunds/{refund_id}", headers=other)
    assert resp.status_code == 401


def test_list_refunds_name_filter_is_literal(client, login):
    percent, _ = login(name="Ana 100% Silva")
    plain, _ = login(name="Ana Silva")
    _create(client, percent)
    _create(client, plain)
    manager, _ = login(name="Gerente", role="manager")

    for term, expected in (("%", 1), ("100%", 1), ("_", 0), ("ana", 2)):
        resp = client.get("/refunds", params={"name": term}, headers=manager)
        assert resp.json()["pagination"]["totalRecords"] == expected
