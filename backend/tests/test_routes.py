# Overview: Pytest coverage for the HTTP layer (scope headers, status codes, JSON shapes).

from conftest import scope_headers


class TestScopeHeaders:

    def test_missing_scope_is_401(self, db_session, client):
        response = client.get("/api/inventory/stock")
        assert response.status_code == 401

    def test_malformed_scope_is_401(self, db_session, client):
        response = client.get("/api/inventory/stock", headers={"X-Tenant-Id": "abc", "X-Outlet-Id": "1"})
        assert response.status_code == 401

    def test_unknown_role_is_401(self, db_session, client, ctx):
        headers = scope_headers(ctx)
        headers["X-Actor-Role"] = "JANITOR"
        assert client.get("/api/inventory/stock", headers=headers).status_code == 401

    def test_health_needs_no_scope(self, db_session, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json["status"] == "healthy"


class TestInventoryRoutes:

    def test_staff_cannot_create_products(self, db_session, client, ctx):
        response = client.post("/api/inventory/products", json={"name": "Tea"}, headers=scope_headers(ctx))
        assert response.status_code == 403

    def test_manager_creates_product_with_opening_stock(self, db_session, client, manager_ctx):
        response = client.post(
            "/api/inventory/products",
            json={"name": "Tea", "price_cents": 250, "opening_stock": "12"},
            headers=scope_headers(manager_ctx),
        )
        assert response.status_code == 201
        product = response.json["product"]
        assert product["current_stock"] == "12"

        moves = client.get(f"/api/inventory/products/{product['id']}/moves", headers=scope_headers(manager_ctx))
        assert [m["type"] for m in moves.json["moves"]] == ["ADJUSTMENT"]

    def test_wastage_beyond_stock_is_409(self, db_session, client, ctx, flour):
        response = client.post(
            f"/api/inventory/ingredients/{flour.id}/wastage",
            json={"quantity": "500", "reason": "flood"},
            headers=scope_headers(ctx),
        )
        assert response.status_code == 409
        assert response.json["code"] == "insufficient_stock"

    def test_adjust_recipe_product_is_409(self, db_session, client, ctx, bread):
        response = client.post(
            f"/api/inventory/products/{bread.id}/adjust",
            json={"delta": "1", "type": "PURCHASE"},
            headers=scope_headers(ctx),
        )
        assert response.status_code == 409
        assert response.json["code"] == "invalid_state"

    def test_bad_delta_is_400(self, db_session, client, ctx, cola):
        response = client.post(
            f"/api/inventory/products/{cola.id}/adjust",
            json={"delta": "lots"},
            headers=scope_headers(ctx),
        )
        assert response.status_code == 400

    def test_unknown_item_is_404(self, db_session, client, ctx):
        response = client.post(
            "/api/inventory/products/424242/adjust",
            json={"delta": "1"},
            headers=scope_headers(ctx),
        )
        assert response.status_code == 404

    def test_reconcile_reports_no_drift(self, db_session, client, manager_ctx, flour, cola):
        response = client.get("/api/inventory/reconcile", headers=scope_headers(manager_ctx))
        assert response.status_code == 200
        assert response.json == {"checked": 2, "drifted": []}


class TestSalesRoutes:

    def _body(self, bread):
        return {
            "external_id": "web-1",
            "items": [{"product_id": bread.id, "name": "Bread", "quantity": 2, "unit_price_cents": 10000}],
            "total_cents": 20000,
            "payment_method": "cash",
            "created_at": "2026-03-01T09:15:00Z",
        }

    def test_sale_is_idempotent_over_http(self, db_session, client, ctx, bread):
        first = client.post("/api/sales/", json=self._body(bread), headers=scope_headers(ctx))
        second = client.post("/api/sales/", json=self._body(bread), headers=scope_headers(ctx))
        assert first.status_code == 200
        assert second.status_code == 200
        assert first.json["order"]["id"] == second.json["order"]["id"]

        stock = client.get("/api/inventory/stock", headers=scope_headers(ctx)).json
        assert stock["ingredients"][0]["current_stock"] == "99"

    def test_invalid_payload_is_400(self, db_session, client, ctx):
        response = client.post("/api/sales/", json={"external_id": "x", "items": []}, headers=scope_headers(ctx))
        assert response.status_code == 400

    def test_get_unknown_order_is_404(self, db_session, client, ctx):
        assert client.get("/api/sales/nope", headers=scope_headers(ctx)).status_code == 404


class TestRegisterRoutes:

    def test_full_day(self, db_session, client, ctx, manager):
        headers = scope_headers(ctx)
        opened = client.post(
            "/api/registers/open",
            json={"business_date": "2026-03-01", "actual_opening_cents": 5000},
            headers=headers,
        )
        assert opened.status_code == 201
        register_id = opened.json["register"]["id"]

        expense = client.post(
            f"/api/registers/{register_id}/transactions",
            json={"type": "expense", "amount_cents": 1000, "category": "milk"},
            headers=headers,
        )
        assert expense.status_code == 201

        summary = client.get("/api/registers/by-date/2026-03-01", headers=headers)
        assert summary.json["register"]["expected_cash_cents"] == 4000

        blocked = client.post(
            f"/api/registers/{register_id}/close",
            json={"actual_cash_cents": 0},
            headers=headers,
        )
        assert blocked.status_code == 422
        assert blocked.json["code"] == "variance_explanation_required"

        closed = client.post(
            f"/api/registers/{register_id}/close",
            json={
                "actual_cash_cents": 0,
                "variance_note": "till emptied to bank",
                "approval": {"user_id": manager.id, "pin": "2468"},
            },
            headers=headers,
        )
        assert closed.status_code == 200
        assert closed.json["register"]["variance_cents"] == -4000

        late = client.post(
            f"/api/registers/{register_id}/transactions",
            json={"type": "EXPENSE", "amount_cents": 100},
            headers=headers,
        )
        assert late.status_code == 409
        assert late.json["code"] == "register_closed"

        daily = client.get("/api/registers/daily/2026-03-01", headers=headers)
        assert daily.status_code == 200
        assert daily.json["closure"]["actual_cash_cents"] == 0
        assert daily.json["closure"]["variance_cents"] == -4000

    def test_daily_closure_for_quiet_day(self, db_session, client, ctx):
        quiet = client.get("/api/registers/daily/2026-03-02", headers=scope_headers(ctx))
        assert quiet.status_code == 200
        assert quiet.json["closure"] is None

        bad = client.get("/api/registers/daily/not-a-date", headers=scope_headers(ctx))
        assert bad.status_code == 400

    def test_double_open_is_409(self, db_session, client, ctx):
        body = {"business_date": "2026-03-01", "actual_opening_cents": 0}
        client.post("/api/registers/open", json=body, headers=scope_headers(ctx))
        again = client.post("/api/registers/open", json=body, headers=scope_headers(ctx))
        assert again.status_code == 409
        assert again.json["code"] == "already_open"

    def test_incomplete_approval_is_400(self, db_session, client, ctx):
        opened = client.post(
            "/api/registers/open",
            json={"business_date": "2026-03-01", "actual_opening_cents": 0},
            headers=scope_headers(ctx),
        )
        response = client.post(
            f"/api/registers/{opened.json['register']['id']}/close",
            json={"actual_cash_cents": 0, "approval": {"user_id": 1}},
            headers=scope_headers(ctx),
        )
        assert response.status_code == 400


class TestWalletRoutes:

    def test_transfer_flow(self, db_session, client, ctx, manager_ctx):
        pin = client.put("/api/wallets/pin", json={"pin": "1234"}, headers=scope_headers(manager_ctx))
        assert pin.status_code == 200
        assert "manager_pin_hash" not in pin.json["wallet"]

        client.post(
            "/api/registers/open",
            json={"business_date": "2026-03-01", "actual_opening_cents": 1000},
            headers=scope_headers(ctx),
        )

        denied = client.post(
            "/api/wallets/transfers",
            json={"source": "register", "destination": "manager_safe", "amount_cents": 400, "pin": "0000"},
            headers=scope_headers(ctx),
        )
        assert denied.status_code == 403

        moved = client.post(
            "/api/wallets/transfers",
            json={"source": "register", "destination": "manager_safe", "amount_cents": 400, "pin": "1234"},
            headers=scope_headers(ctx),
        )
        assert moved.status_code == 201

        wallets = client.get("/api/wallets/", headers=scope_headers(ctx)).json["wallets"]
        assert {w["type"]: w["balance_cents"] for w in wallets} == {"MANAGER_SAFE": 400, "REGISTER": -400}

    def test_staff_cannot_set_pin(self, db_session, client, ctx):
        assert client.put("/api/wallets/pin", json={"pin": "1234"}, headers=scope_headers(ctx)).status_code == 403
