"""HTTP surface: status codes and JSON shapes of the storefront API."""

import pytest


PARENT_TIERS = {
    "tiered_discounts": [
        {
            "active": True,
            "tiers": [
                {"min_quantity": 5, "max_quantity": 9, "type": "percentage", "value": 10},
                {"min_quantity": 10, "max_quantity": None, "type": "percentage", "value": 20},
            ],
        },
    ],
}


def test_health(client, db_session):
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"]["status"] == "healthy"


def test_version(client):
    resp = client.get("/version")
    assert resp.status_code == 200
    assert "api_version" in resp.get_json()


class TestVariantRoutes:
    def test_create_variant(self, client, parent):
        resp = client.post("/api/variants/", json={
            "parent_id": parent.id,
            "sku": " cb-500 ",
            "attributes": {"Size": "500ml"},
            "price": 15000,
            "stock": 12,
        })
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["variant"]["sku"] == "CB-500"
        assert body["variant"]["name"] == "Cold Brew 500ml"
        assert body["variant"]["attributes"] == {"size": "500ml"}
        assert body["warnings"] == []

    def test_create_variant_rejects_undeclared_value(self, client, parent):
        resp = client.post("/api/variants/", json={
            "parent_id": parent.id,
            "sku": "CB-1L",
            "attributes": {"size": "1L"},
            "price": 20000,
        })
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "validation_error"

    def test_create_variant_unknown_parent(self, client, db_session):
        resp = client.post("/api/variants/", json={
            "parent_id": 999,
            "sku": "X-1",
            "attributes": {},
            "price": 100,
        })
        assert resp.status_code == 404

    def test_discount_preview(self, client, make_variant):
        variant = make_variant(fixed_discount={"enabled": True, "type": "percentage", "value": 15, "badge": "-15%"})
        resp = client.get(f"/api/variants/{variant.id}/discount-preview")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["original_price"] == 10000
        assert body["has_discount"] is True
        assert body["discount_type"] == "percentage"
        assert body["discounted_price"] == 8500
        assert body["badge"] == "-15%"
        assert body["tier_previews"] == []
        assert "price_calculation" not in body

    def test_discount_preview_with_quantity(self, client, make_variant):
        variant = make_variant(fixed_discount={"enabled": True, "type": "amount", "value": 1000})
        resp = client.get(f"/api/variants/{variant.id}/discount-preview?quantity=3")
        calc = resp.get_json()["price_calculation"]
        assert calc["final_price_per_unit"] == 9000
        assert calc["discount_per_unit"] == 1000
        assert calc["total_discount_for_quantity"] == 3000
        assert calc["fixed_applied"] is True

    def test_discount_preview_unknown_variant(self, client, db_session):
        resp = client.get("/api/variants/4040/discount-preview")
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "not_found"

    @pytest.mark.parametrize("quantity", ["0", "-2", "abc", "1.5"])
    def test_price_rejects_bad_quantity(self, client, make_variant, quantity):
        variant = make_variant()
        resp = client.get(f"/api/variants/{variant.id}/price?quantity={quantity}")
        assert resp.status_code == 400

    def test_update_discounts_invalid(self, client, make_variant):
        variant = make_variant()
        resp = client.put(f"/api/variants/{variant.id}/discounts", json={
            "fixed_discount": {"enabled": True, "type": "percentage", "value": 150},
        })
        assert resp.status_code == 400
        assert client.get(f"/api/variants/{variant.id}").get_json()["variant"]["fixed_discount"] is None

    def test_update_discounts_overlap_is_a_warning(self, client, make_variant):
        variant = make_variant()
        resp = client.put(f"/api/variants/{variant.id}/discounts", json={
            "tiered_discount": {
                "active": True,
                "tiers": [
                    {"min_quantity": 1, "max_quantity": 10, "type": "percentage", "value": 5},
                    {"min_quantity": 5, "max_quantity": None, "type": "percentage", "value": 10},
                ],
            },
        })
        assert resp.status_code == 200
        body = resp.get_json()
        assert len(body["warnings"]) == 1
        assert body["variant"]["tiered_discount"]["active"] is True

        price = client.get(f"/api/variants/{variant.id}/price?quantity=7").get_json()
        assert price["final_price_per_unit"] == 9000
        assert price["source"] == "variant_tier"

    def test_parent_tiers_drive_tier_preview_and_price(self, client, parent, make_variant):
        variant = make_variant()
        resp = client.put(f"/api/parents/{parent.id}/tiered-discounts", json=PARENT_TIERS)
        assert resp.status_code == 200

        tiers = client.get(f"/api/variants/{variant.id}/tier-preview").get_json()["tiers"]
        assert [(t["min_quantity"], t["price_per_unit"]) for t in tiers] == [(5, 9000), (10, 8000)]

        price = client.get(f"/api/variants/{variant.id}/price?quantity=12").get_json()
        assert price["final_price_per_unit"] == 8000
        assert price["source"] == "parent_tier"

    def test_parent_tiers_reject_unknown_attribute_value(self, client, parent):
        resp = client.put(f"/api/parents/{parent.id}/tiered-discounts", json={
            "tiered_discounts": [{
                "attribute": "size",
                "attribute_value": "2L",
                "active": True,
                "tiers": [{"min_quantity": 2, "type": "percentage", "value": 5}],
            }],
        })
        assert resp.status_code == 400

    def test_low_and_out_of_stock(self, client, make_variant):
        low = make_variant(stock=2)
        empty = make_variant(stock=0)
        make_variant(stock=80)

        low_body = client.get("/api/variants/low-stock").get_json()
        out_body = client.get("/api/variants/out-of-stock").get_json()
        assert [v["id"] for v in low_body["variants"]] == [low.id]
        assert [v["id"] for v in out_body["variants"]] == [empty.id]
        assert out_body["count"] == 1


class TestOrderRoutes:
    def test_create_order(self, client, make_variant, order_payload):
        variant = make_variant(stock=10)
        resp = client.post("/api/orders/", json=order_payload([(variant.id, 3)]))
        assert resp.status_code == 201
        order = resp.get_json()["order"]
        assert order["status"] == "pending_whatsapp"
        assert order["total"] == 30000
        assert order["items"][0]["quantity"] == 3
        assert client.get(f"/api/variants/{variant.id}").get_json()["variant"]["stock"] == 7

    def test_insufficient_stock(self, client, make_variant, order_payload):
        variant = make_variant(stock=5)
        resp = client.post("/api/orders/", json=order_payload([(variant.id, 10)]))
        assert resp.status_code == 400
        body = resp.get_json()
        assert body["code"] == "insufficient_stock"
        assert body["details"]["items"][0]["available"] == 5

    @pytest.mark.parametrize("overrides", [
        {"items": []},
        {"delivery_method": "drone"},
        {"payment_method": "crypto"},
        {"delivery_method": "delivery"},
        {"customer": {"name": "Ana"}},
    ])
    def test_invalid_payload(self, client, make_variant, order_payload, overrides):
        variant = make_variant()
        resp = client.post("/api/orders/", json=order_payload([(variant.id, 1)], **overrides))
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "validation_error"

    def test_confirm_then_cancel(self, client, make_variant, order_payload):
        variant = make_variant(stock=10)
        order_id = client.post("/api/orders/", json=order_payload([(variant.id, 2)])).get_json()["order"]["id"]

        confirmed = client.put(f"/api/orders/{order_id}/confirm", json={"shipping_cost": 1500})
        assert confirmed.status_code == 200
        assert confirmed.get_json()["order"]["total"] == 21500

        cancelled = client.put(f"/api/orders/{order_id}/cancel", json={"reason": "Customer changed mind"})
        assert cancelled.status_code == 200
        assert cancelled.get_json()["order"]["status"] == "cancelled"

        again = client.put(f"/api/orders/{order_id}/cancel", json={"reason": "Second click on cancel"})
        assert again.status_code == 400
        assert again.get_json()["code"] == "invalid_transition"

        movements = client.get(f"/api/stock-movements/order/{order_id}").get_json()
        assert [m["type"] for m in movements["movements"]] == ["sale", "cancellation"]
        assert client.get(f"/api/variants/{variant.id}").get_json()["variant"]["stock"] == 10

    @pytest.mark.parametrize("body", [{}, {"reason": "No"}, {"reason": "   "}])
    def test_cancel_requires_reason(self, client, make_variant, order_payload, body):
        variant = make_variant(stock=10)
        order_id = client.post("/api/orders/", json=order_payload([(variant.id, 2)])).get_json()["order"]["id"]

        resp = client.put(f"/api/orders/{order_id}/cancel", json=body)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "validation_error"

        status = client.put(f"/api/orders/{order_id}/status", json={"status": "cancelled", **body})
        assert status.status_code == 400

        assert client.get(f"/api/orders/{order_id}").get_json()["order"]["status"] == "pending_whatsapp"
        assert client.get(f"/api/variants/{variant.id}").get_json()["variant"]["stock"] == 8

    def test_get_by_order_number(self, client, make_variant, order_payload):
        variant = make_variant()
        order = client.post("/api/orders/", json=order_payload([(variant.id, 1)])).get_json()["order"]

        resp = client.get(f"/api/orders/number/{order['order_number']}")
        assert resp.status_code == 200
        assert resp.get_json()["order"]["id"] == order["id"]
        assert client.get("/api/orders/number/QUE-19990101-001").status_code == 404

    @pytest.mark.parametrize("method,path", [
        ("post", "/api/orders/"),
        ("post", "/api/orders/validate-cart"),
        ("put", "/api/orders/1/confirm"),
        ("put", "/api/orders/1/status"),
        ("put", "/api/orders/1/cancel"),
        ("put", "/api/orders/1/items"),
        ("post", "/api/stock-movements/"),
        ("post", "/api/variants/"),
        ("put", "/api/variants/1/discounts"),
        ("put", "/api/parents/1/tiered-discounts"),
    ])
    def test_non_object_body_is_rejected(self, client, db_session, method, path):
        resp = getattr(client, method)(path, json=[1, 2])
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "validation_error"

    def test_status_route(self, client, make_variant, order_payload):
        variant = make_variant()
        order_id = client.post("/api/orders/", json=order_payload([(variant.id, 1)])).get_json()["order"]["id"]

        assert client.put(f"/api/orders/{order_id}/status", json={}).status_code == 400
        assert client.put(f"/api/orders/{order_id}/status", json={"status": "bogus"}).status_code == 400
        resp = client.put(f"/api/orders/{order_id}/status", json={"status": "preparing"})
        assert resp.status_code == 200
        assert client.put(f"/api/orders/{order_id}/status", json={"status": "confirmed"}).status_code == 400

    def test_edit_items_route(self, client, make_variant, order_payload):
        variant = make_variant(stock=10)
        order_id = client.post("/api/orders/", json=order_payload([(variant.id, 1)])).get_json()["order"]["id"]
        resp = client.put(f"/api/orders/{order_id}/items", json={"items": [{"variant_id": variant.id, "quantity": 4}]})
        assert resp.status_code == 200
        assert resp.get_json()["order"]["subtotal"] == 40000

    def test_get_and_list(self, client, make_variant, order_payload):
        variant = make_variant()
        order_id = client.post("/api/orders/", json=order_payload([(variant.id, 1)])).get_json()["order"]["id"]

        assert client.get(f"/api/orders/{order_id}").status_code == 200
        assert client.get("/api/orders/999").status_code == 404

        listing = client.get("/api/orders/?status=pending_whatsapp").get_json()
        assert listing["total"] == 1
        assert client.get("/api/orders/?status=lost").status_code == 400

    def test_validate_cart(self, client, make_variant):
        variant = make_variant(fixed_discount={"enabled": True, "type": "percentage", "value": 10})

        ok = client.post("/api/orders/validate-cart", json={
            "items": [{"variant_id": variant.id, "quantity": 2, "final_price": 9000}],
        }).get_json()
        assert ok["valid"] is True
        assert ok["subtotal"] == 18000
        assert ok["total_discount"] == 2000

        stale = client.post("/api/orders/validate-cart", json={
            "items": [{"variant_id": variant.id, "quantity": 2, "final_price": 10000}],
        }).get_json()
        assert stale["valid"] is False
        assert stale["discrepancies"] == [
            {"variant_id": variant.id, "quantity": 2, "client_price": 10000, "server_price": 9000},
        ]


class TestStockMovementRoutes:
    def test_record_restock(self, client, make_variant):
        variant = make_variant(stock=4)
        resp = client.post("/api/stock-movements/", json={
            "variant_id": variant.id, "type": "restock", "quantity": 6, "reason": "Supplier delivery",
        })
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["movement"]["previous_stock"] == 4
        assert body["movement"]["new_stock"] == 10
        assert body["variant"]["stock"] == 10

    def test_adjustment_below_zero(self, client, make_variant):
        variant = make_variant(stock=3)
        resp = client.post("/api/stock-movements/", json={
            "variant_id": variant.id, "type": "adjustment", "quantity": -5, "reason": "Breakage",
        })
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "insufficient_stock"

    def test_sale_type_not_accepted(self, client, make_variant):
        variant = make_variant()
        resp = client.post("/api/stock-movements/", json={
            "variant_id": variant.id, "type": "sale", "quantity": -1, "reason": "manual sale",
        })
        assert resp.status_code == 400

    def test_unknown_variant(self, client, db_session):
        resp = client.post("/api/stock-movements/", json={
            "variant_id": 4040, "type": "restock", "quantity": 1, "reason": "count",
        })
        assert resp.status_code == 404
        assert client.get("/api/stock-movements/variant/4040").status_code == 404
        assert client.get("/api/stock-movements/order/4040").status_code == 404

    def test_listing(self, client, make_variant):
        variant = make_variant(stock=0)
        for qty in (1, 2, 3):
            client.post("/api/stock-movements/", json={
                "variant_id": variant.id, "type": "restock", "quantity": qty, "reason": "restock",
            })

        history = client.get(f"/api/stock-movements/variant/{variant.id}?limit=2").get_json()
        assert [m["quantity"] for m in history["movements"]] == [3, 2]

        page = client.get("/api/stock-movements/?type=restock&per_page=2&page=2").get_json()
        assert page["total"] == 3
        assert len(page["items"]) == 1
