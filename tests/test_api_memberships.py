"""API tests for membership endpoints."""

import pytest

from app.services import membership as membership_module


@pytest.fixture(autouse=True)
def stripe_double(monkeypatch, gateway):
    monkeypatch.setattr(membership_module, "billing_gateway", gateway)
    return gateway


class TestTiers:
    def test_list_tiers_sorted_by_price(self, client, tiers, premium_tier):
        response = client.get("/memberships/tiers")

        assert response.status_code == 200
        prices = [float(t["price"]) for t in response.json()]
        assert prices == sorted(prices)
        assert response.json()[0]["is_paid"] is False

    def test_versioned_prefix(self, client, tiers):
        response = client.get("/api/v1/memberships/tiers")
        assert response.status_code == 200


class TestFreeMembership:
    def test_join_free_tier(self, client, auth_headers, free_tier, user):
        response = client.post(
            "/memberships/free",
            json={"tier_id": str(free_tier.id)},
            headers=auth_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["user_id"] == str(user.id)
        assert data["status"] == "active"
        assert data["cancel_at_period_end"] is False

    def test_join_requires_auth(self, client, free_tier):
        response = client.post("/memberships/free", json={"tier_id": str(free_tier.id)})
        assert response.status_code == 401

    def test_paid_tier_rejected(self, client, auth_headers, paid_tier):
        response = client.post(
            "/memberships/free",
            json={"tier_id": str(paid_tier.id)},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_input"


class TestSubscribe:
    def test_subscribe_returns_client_secret(self, client, auth_headers, paid_tier):
        response = client.post(
            "/memberships/subscribe",
            json={"tier_id": str(paid_tier.id), "payment_method_id": "pm_card_visa"},
            headers=auth_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["subscription_id"].startswith("sub_")
        assert data["client_secret"] == "pi_secret_test"
        assert data["membership"]["status"] == "active"

    def test_second_subscription_conflicts(
        self, client, auth_headers, user, paid_tier, make_paid_membership
    ):
        make_paid_membership(user, paid_tier)

        response = client.post(
            "/memberships/subscribe",
            json={"tier_id": str(paid_tier.id), "payment_method_id": "pm_card_visa"},
            headers=auth_headers,
        )

        assert response.status_code == 409

    def test_gateway_failure_is_502(self, client, auth_headers, paid_tier, stripe_double):
        from app.errors import GatewayError

        stripe_double.create_subscription.side_effect = GatewayError(
            "Billing provider request failed", provider_message="Your card was declined."
        )

        response = client.post(
            "/memberships/subscribe",
            json={"tier_id": str(paid_tier.id), "payment_method_id": "pm_card_visa"},
            headers=auth_headers,
        )

        assert response.status_code == 502
        body = response.json()
        assert body["code"] == "gateway_error"
        assert "declined" not in body["message"]


class TestStatusAndChanges:
    def test_status_for_paid_member(
        self, client, auth_headers, user, paid_tier, make_paid_membership
    ):
        make_paid_membership(user, paid_tier)

        response = client.get("/memberships/status", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["tier_name"] == paid_tier.name
        assert data["is_paid_member"] is True
        assert data["benefits"] == paid_tier.benefits

    def test_status_without_membership(self, client, auth_headers):
        response = client.get("/memberships/status", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["code"] == "no_active_membership"

    def test_cancel_sets_flag(
        self, client, auth_headers, user, paid_tier, make_paid_membership, stripe_double
    ):
        membership = make_paid_membership(user, paid_tier)

        response = client.post("/memberships/cancel", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["cancel_at_period_end"] is True
        assert response.json()["status"] == "active"
        stripe_double.set_subscription_cancel_at_period_end.assert_called_once_with(
            membership.external_subscription_ref, True
        )

    def test_change_tier(
        self, client, auth_headers, user, paid_tier, premium_tier, make_paid_membership
    ):
        make_paid_membership(user, paid_tier)

        response = client.post(
            "/memberships/change-tier",
            json={"tier_id": str(premium_tier.id)},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["tier_id"] == str(premium_tier.id)


class TestConfirmAndPaymentMethod:
    def test_confirm_activates_subscription(
        self, client, auth_headers, user, paid_tier, make_paid_membership, stripe_double
    ):
        from app.models.membership import MembershipStatus

        membership = make_paid_membership(user, paid_tier, status=MembershipStatus.unpaid)

        response = client.post(
            "/memberships/confirm",
            json={
                "subscription_id": membership.external_subscription_ref,
                "client_secret": "pi_9Xy_secret_abc",
            },
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["status"] == "active"
        assert response.json()["last_payment_status"] == "succeeded"
        stripe_double.confirm_payment_intent.assert_called_once_with("pi_9Xy")

    def test_confirm_failure_reports_payment_status(
        self, client, auth_headers, user, paid_tier, make_paid_membership, stripe_double
    ):
        membership = make_paid_membership(user, paid_tier)
        stripe_double.confirm_payment_intent.return_value = {
            "id": "pi_9Xy",
            "status": "requires_payment_method",
        }

        response = client.post(
            "/memberships/confirm",
            json={
                "subscription_id": membership.external_subscription_ref,
                "client_secret": "pi_9Xy_secret_abc",
            },
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["details"] == {"status": "requires_payment_method"}

    def test_update_payment_method(
        self, client, auth_headers, db_session, user, stripe_double
    ):
        user.billing_customer_ref = "cus_api_card"
        db_session.commit()

        response = client.post(
            "/memberships/payment-method",
            json={"payment_method_id": "pm_card_amex"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"payment_method_id": "pm_card_amex"}
        stripe_double.set_default_payment_method.assert_called_once_with(
            "cus_api_card", "pm_card_amex"
        )

    def test_update_payment_method_without_customer(self, client, auth_headers, stripe_double):
        response = client.post(
            "/memberships/payment-method",
            json={"payment_method_id": "pm_card_amex"},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_input"
        stripe_double.set_default_payment_method.assert_not_called()

    def test_update_payment_method_requires_auth(self, client):
        response = client.post(
            "/memberships/payment-method", json={"payment_method_id": "pm_card_amex"}
        )
        assert response.status_code == 401


class TestRefund:
    def test_refund_marks_membership(
        self, client, auth_headers, user, paid_tier, make_paid_membership, outbox
    ):
        make_paid_membership(user, paid_tier)

        response = client.post(
            "/memberships/refund",
            json={"charge_id": "ch_123", "amount": "20.00", "reason": "duplicate"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "refunded"
        assert data["refund_reason"] == "duplicate"
        assert any(m["subject"].startswith("Refund Processed") for m in outbox)

    def test_refund_with_unknown_reason(
        self, client, auth_headers, user, paid_tier, make_paid_membership, stripe_double
    ):
        make_paid_membership(user, paid_tier)

        response = client.post(
            "/memberships/refund",
            json={"charge_id": "ch_123", "amount": "20.00", "reason": "changed_mind"},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert "requested_by_customer" in response.json()["details"]["allowed"]
        stripe_double.refund.assert_not_called()
