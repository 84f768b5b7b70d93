"""
Dashboard aggregation tests.
"""

import pytest

from crm.constants import CustomerNature, CustomerProgress


@pytest.fixture
def seeded(client, admin_headers, sales_headers, agent_headers, sales_user, other_sales_user, agent, product, customer_payload):
    """Three customers: one per sales rep plus one created by the agent."""
    bodies = [
        (sales_headers, customer_payload(sales_user.id, name="销售甲的客户")),
        (admin_headers, customer_payload(
            other_sales_user.id,
            name="销售乙的客户",
            nature=CustomerNature.RESEARCH,
            productNeeds=[str(product.id)],
            annualDemand=1000,
        )),
        (agent_headers, customer_payload(
            sales_user.id,
            name="代理商的客户",
            relatedAgentId=agent.id,
            progress=CustomerProgress.TESTING,
            productNeeds=[],
        )),
    ]
    for headers, body in bodies:
        resp = client.post("/api/customers", json=body, headers=headers)
        assert resp.status_code == 201, resp.json


class TestOverview:

    def test_admin_sees_everything(self, client, admin_headers, seeded):
        resp = client.get("/api/dashboard", headers=admin_headers)
        assert resp.status_code == 200
        stats = resp.json["data"]["statistics"]
        assert stats["customers"]["total"] == 3
        assert stats["customers"]["publicPool"] == 0
        assert stats["products"] == {"total": 1, "lowStock": 0}
        assert stats["users"]["FACTORY_SALES"] == 2
        assert stats["users"]["AGENT"] == 1

    def test_sales_sees_own_and_agent_customers(self, client, sales_headers, seeded):
        resp = client.get("/api/dashboard", headers=sales_headers)
        stats = resp.json["data"]["statistics"]
        assert stats["customers"]["total"] == 2
        assert stats["users"] == {"AGENT": 1}

    def test_inventory_manager_gets_no_distribution(self, client, inventory_headers, seeded):
        resp = client.get("/api/dashboard", headers=inventory_headers)
        assert resp.json["data"]["statistics"]["customers"]["distribution"] == []

        resp = client.get("/api/dashboard/customer-distribution", headers=inventory_headers)
        assert resp.status_code == 403

    def test_customer_distribution(self, client, admin_headers, seeded):
        resp = client.get("/api/dashboard/customer-distribution", headers=admin_headers)
        data = resp.json["data"]
        assert {"name": CustomerNature.SME, "value": 2} in data["natureDistribution"]
        assert {"name": CustomerNature.RESEARCH, "value": 1} in data["natureDistribution"]
        assert data["importanceDistribution"] == [{"name": "A类客户", "value": 3}]

    def test_monthly_stats(self, client, admin_headers, seeded):
        resp = client.get("/api/dashboard/monthly-stats", headers=admin_headers)
        data = resp.json["data"]
        assert len(data["monthLabels"]) == 12
        assert data["newCustomerStats"][-1] == 3
        assert sum(data["newCustomerStats"]) == 3
        assert data["progressChangeStats"]["testing"][-1] == 1

    def test_monthly_stock_changes_hidden_from_sales(self, client, sales_headers, inventory_headers, product, seeded):
        client.post(f"/api/products/{product.id}/stock-in", json={"quantity": 30}, headers=inventory_headers)

        resp = client.get("/api/dashboard/monthly-stats", headers=inventory_headers)
        assert resp.json["data"]["stockChangeStats"][-1] == 30
        assert resp.json["data"]["progressChangeStats"] is None

        resp = client.get("/api/dashboard/monthly-stats", headers=sales_headers)
        assert resp.json["data"]["stockChangeStats"] == [0] * 12

    def test_product_demand(self, client, admin_headers, seeded):
        resp = client.get("/api/dashboard/product-demand", headers=admin_headers)
        demand = resp.json["data"]["productDemandData"]
        assert demand == [{
            "productName": "STM32F103/LQFP48",
            "customerCount": 2,
            "totalDemand": 51000,
        }]


class TestDashboardStats:

    def test_month_range_for_admin(self, client, admin_headers, seeded):
        resp = client.get("/api/dashboard-stats?timeRange=month", headers=admin_headers)
        assert resp.status_code == 200
        data = resp.json["data"]
        assert data["customerCount"] == 3
        assert data["productCount"] == 1
        assert data["agentCount"] == 1
        assert data["productPackageType"] == [{"name": "LQFP48", "value": 1}]
        assert data["productStockLevel"] == [{"name": "库存不足", "value": 1}]
        assert data["productCustomerRelation"] == [{"name": "STM32F103/LQFP48", "value": 2}]
        assert data["productProgressDistribution"][0]["sample"] == 2

    def test_sales_relation_scope(self, client, other_sales_headers, seeded):
        resp = client.get("/api/dashboard-stats", headers=other_sales_headers)
        data = resp.json["data"]
        assert data["customerCount"] == 1
        assert data["agentCount"] == 0

    def test_agent_relation_scope(self, client, agent_headers, seeded):
        resp = client.get("/api/dashboard-stats", headers=agent_headers)
        assert resp.json["data"]["customerCount"] == 1
        assert resp.json["data"]["customerProgress"] == [{"name": CustomerProgress.TESTING, "value": 1}]

    def test_custom_range_in_the_past_is_empty(self, client, admin_headers, seeded):
        resp = client.get(
            "/api/dashboard-stats?timeRange=custom&startDate=2001-01-01&endDate=2001-12-31",
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json["data"]["customerCount"] == 0

    def test_invalid_time_range(self, client, admin_headers):
        resp = client.get("/api/dashboard-stats?timeRange=decade", headers=admin_headers)
        assert resp.status_code == 400
