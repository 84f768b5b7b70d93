"""
Customer lifecycle tests.

Verifies:
- Creation writes assignment and progress history
- Row-level visibility for sales reps and agents
- Public pool: move in, restricted view, claim out
- Direct reassignment and follow-up records
"""

import pytest

from crm.constants import AssignmentType, CustomerNature, CustomerProgress, PROGRESS_NONE, UserRole
from crm.models import Customer, FollowUpRecord


def _create(client, headers, body):
    resp = client.post("/api/customers", json=body, headers=headers)
    assert resp.status_code == 201, resp.json
    return resp.json["data"]


def _history(client, headers, customer_id):
    resp = client.get(f"/api/customerAssignments/{customer_id}", headers=headers)
    assert resp.status_code == 200
    return resp.json["data"]["history"]


def _progress(client, headers, customer_id):
    resp = client.get(f"/api/customer-progress/{customer_id}", headers=headers)
    assert resp.status_code == 200
    return resp.json["data"]


class TestCustomerCreation:

    def test_sales_creates_customer_for_self(self, client, sales_headers, sales_user, customer_payload):
        data = _create(client, sales_headers, customer_payload(sales_user.id))
        assert data["ownerType"] == UserRole.FACTORY_SALES
        assert data["ownerId"] == sales_user.id
        assert data["relatedSalesName"] == "sales_a"
        assert data["isInPublicPool"] is False

        history = _history(client, sales_headers, data["id"])
        assert [h["operationType"] for h in history] == [AssignmentType.CREATE_CLAIM]
        assert history[0]["toRelatedSalesId"] == sales_user.id

        progress = _progress(client, sales_headers, data["id"])
        assert len(progress) == 1
        assert progress[0]["fromProgress"] == PROGRESS_NONE
        assert progress[0]["toProgress"] == CustomerProgress.SAMPLE_EVALUATION

    def test_admin_creation_is_an_assignment(self, client, admin_headers, sales_user, agent, customer_payload):
        data = _create(client, admin_headers, customer_payload(sales_user.id, relatedAgentId=agent.id))
        assert data["relatedAgentName"] == agent.company_name

        history = _history(client, admin_headers, data["id"])
        assert history[0]["operationType"] == AssignmentType.CREATE_ASSIGN

    def test_duplicate_name_is_rejected(self, client, sales_headers, sales_user, customer_payload):
        _create(client, sales_headers, customer_payload(sales_user.id))
        resp = client.post("/api/customers", json=customer_payload(sales_user.id), headers=sales_headers)
        assert resp.status_code == 400
        assert resp.json["errorCode"] == "DUPLICATE_ENTRY"

    def test_cannot_create_directly_in_pool(self, client, sales_headers, sales_user, customer_payload):
        body = customer_payload(sales_user.id, progress=CustomerProgress.PUBLIC_POOL)
        resp = client.post("/api/customers", json=body, headers=sales_headers)
        assert resp.status_code == 400

    def test_missing_required_field(self, client, sales_headers, sales_user, customer_payload):
        body = customer_payload(sales_user.id)
        del body["nature"]
        resp = client.post("/api/customers", json=body, headers=sales_headers)
        assert resp.status_code == 400

    def test_unknown_field_is_rejected(self, client, sales_headers, sales_user, customer_payload):
        body = customer_payload(sales_user.id, isInPublicPool=True)
        resp = client.post("/api/customers", json=body, headers=sales_headers)
        assert resp.status_code == 400

    @pytest.mark.parametrize("field,value,message", [
        ("annualDemand", "lots", "annualDemand 必须是数字"),
        ("relatedSalesId", "1.5", "relatedSalesId 必须是整数，不能包含小数"),
    ])
    def test_type_errors_are_reported_in_chinese(self, client, sales_headers, sales_user, customer_payload, field, value, message):
        body = customer_payload(sales_user.id, **{field: value})
        resp = client.post("/api/customers", json=body, headers=sales_headers)
        assert resp.status_code == 400
        assert resp.json["error"] == message

    def test_check_duplicate(self, client, sales_headers, sales_user, customer_payload):
        _create(client, sales_headers, customer_payload(sales_user.id))

        resp = client.get("/api/customers/check-duplicate", query_string={"name": "深圳测试电子有限公司"}, headers=sales_headers)
        assert resp.json["data"]["exists"] is True
        assert resp.json["data"]["customers"][0]["ownerName"] == "sales_a"

        resp = client.get("/api/customers/check-duplicate", query_string={"name": "不存在的公司"}, headers=sales_headers)
        assert resp.json["data"]["exists"] is False

    def test_bulk_import_reports_duplicates(self, client, sales_headers, sales_user, customer_payload):
        _create(client, sales_headers, customer_payload(sales_user.id))
        rows = [
            customer_payload(sales_user.id, name="新客户甲"),
            customer_payload(sales_user.id),
        ]
        resp = client.post("/api/customers/bulk-import", json={"customers": rows}, headers=sales_headers)
        assert resp.status_code == 400
        assert resp.json["duplicateNames"] == ["深圳测试电子有限公司"]

    def test_bulk_import_inserts_all(self, client, sales_headers, sales_user, customer_payload):
        rows = [customer_payload(sales_user.id, name=f"批量客户{i}") for i in range(3)]
        resp = client.post("/api/customers/bulk-import", json={"customers": rows}, headers=sales_headers)
        assert resp.status_code == 201
        assert resp.json["data"]["insertedCount"] == 3


class TestCustomerVisibility:

    def test_inventory_manager_has_no_access(self, client, inventory_headers):
        resp = client.get("/api/customers", headers=inventory_headers)
        assert resp.status_code == 403

    def test_other_sales_cannot_see_customer(self, client, sales_headers, other_sales_headers, sales_user, customer_payload):
        data = _create(client, sales_headers, customer_payload(sales_user.id))

        resp = client.get("/api/customers", headers=other_sales_headers)
        assert resp.json["data"]["customers"] == []

        resp = client.get(f"/api/customers/{data['id']}", headers=other_sales_headers)
        assert resp.status_code == 403

    def test_related_agent_sees_customer(self, client, sales_headers, agent_headers, sales_user, agent, customer_payload):
        data = _create(client, sales_headers, customer_payload(sales_user.id, relatedAgentId=agent.id))

        resp = client.get("/api/customers", headers=agent_headers)
        assert [c["id"] for c in resp.json["data"]["customers"]] == [data["id"]]

    def test_pagination(self, client, admin_headers, sales_user, customer_payload):
        for i in range(3):
            _create(client, admin_headers, customer_payload(sales_user.id, name=f"分页客户{i}"))

        resp = client.get("/api/customers?page=1&limit=2", headers=admin_headers)
        pagination = resp.json["data"]["pagination"]
        assert len(resp.json["data"]["customers"]) == 2
        assert pagination == {"total": 3, "page": 1, "limit": 2, "pages": 2}

    def test_keyword_and_nature_filters(self, client, admin_headers, sales_user, customer_payload):
        _create(client, admin_headers, customer_payload(sales_user.id, name="华为技术"))
        _create(client, admin_headers, customer_payload(sales_user.id, name="中科院某所", nature=CustomerNature.RESEARCH))

        resp = client.get("/api/customers", query_string={"keyword": "华为"}, headers=admin_headers)
        assert [c["name"] for c in resp.json["data"]["customers"]] == ["华为技术"]

        resp = client.get("/api/customers", query_string={"nature": CustomerNature.RESEARCH}, headers=admin_headers)
        assert [c["name"] for c in resp.json["data"]["customers"]] == ["中科院某所"]


class TestCustomerUpdates:

    def test_progress_change_is_recorded(self, client, sales_headers, sales_user, customer_payload):
        data = _create(client, sales_headers, customer_payload(sales_user.id))

        resp = client.put(
            f"/api/customers/{data['id']}",
            json={"progress": CustomerProgress.TESTING},
            headers=sales_headers,
        )
        assert resp.status_code == 200
        assert resp.json["data"]["progress"] == CustomerProgress.TESTING

        progress = _progress(client, sales_headers, data["id"])
        assert progress[0]["fromProgress"] == CustomerProgress.SAMPLE_EVALUATION
        assert progress[0]["toProgress"] == CustomerProgress.TESTING
        assert progress[0]["remark"] == "更新客户进展"

    def test_pool_progress_requires_move_operation(self, client, sales_headers, sales_user, customer_payload):
        data = _create(client, sales_headers, customer_payload(sales_user.id))
        resp = client.put(
            f"/api/customers/{data['id']}",
            json={"progress": CustomerProgress.PUBLIC_POOL},
            headers=sales_headers,
        )
        assert resp.status_code == 400

    def test_other_sales_cannot_update(self, client, sales_headers, other_sales_headers, sales_user, customer_payload):
        data = _create(client, sales_headers, customer_payload(sales_user.id))
        resp = client.put(f"/api/customers/{data['id']}", json={"address": "北京"}, headers=other_sales_headers)
        assert resp.status_code == 403

    def test_reassigning_sales_writes_history(self, client, admin_headers, sales_user, other_sales_user, customer_payload):
        data = _create(client, admin_headers, customer_payload(sales_user.id))
        resp = client.put(
            f"/api/customers/{data['id']}",
            json={"relatedSalesId": other_sales_user.id},
            headers=admin_headers,
        )
        assert resp.status_code == 200

        history = _history(client, admin_headers, data["id"])
        assert history[0]["operationType"] == AssignmentType.ASSIGN
        assert history[0]["fromRelatedSalesId"] == sales_user.id
        assert history[0]["toRelatedSalesId"] == other_sales_user.id

    def test_delete_removes_follow_ups(self, client, db_session, sales_headers, sales_user, customer_payload):
        data = _create(client, sales_headers, customer_payload(sales_user.id))
        client.post("/api/followUpRecords", json={
            "customerId": data["id"], "title": "电话沟通", "content": "确认样品需求",
        }, headers=sales_headers)

        resp = client.delete(f"/api/customers/{data['id']}", headers=sales_headers)
        assert resp.status_code == 200

        db_session.expire_all()
        assert db_session.get(Customer, data["id"]) is None
        assert db_session.query(FollowUpRecord).filter_by(customer_id=data["id"]).count() == 0


class TestPublicPool:

    @pytest.fixture
    def pooled(self, client, sales_headers, sales_user, agent, customer_payload):
        data = _create(client, sales_headers, customer_payload(sales_user.id, relatedAgentId=agent.id))
        resp = client.post(f"/api/customers/{data['id']}/move-to-public", headers=sales_headers)
        assert resp.status_code == 200
        return data["id"]

    def test_move_clears_relations(self, client, db_session, admin_headers, sales_user, agent, pooled):
        customer = db_session.get(Customer, pooled)
        assert customer.is_in_public_pool is True
        assert customer.progress == CustomerProgress.PUBLIC_POOL
        assert customer.related_sales_id is None
        assert customer.related_agent_id is None
        assert customer.previous_related_sales_id == sales_user.id
        assert customer.previous_related_agent_name == agent.company_name

        history = _history(client, admin_headers, pooled)
        assert history[0]["operationType"] == AssignmentType.MOVE_TO_PUBLIC
        assert history[0]["toRelatedSalesId"] is None
        assert history[0]["toRelatedAgentId"] is None
        assert history[0]["fromRelatedSalesId"] == sales_user.id
        assert history[0]["fromRelatedAgentId"] == agent.id

    def test_move_twice_is_rejected(self, client, sales_headers, pooled):
        resp = client.post(f"/api/customers/{pooled}/move-to-public", headers=sales_headers)
        assert resp.status_code == 400
        assert resp.json["error"] == "客户已在公海中"

    def test_non_admin_sees_restricted_fields(self, client, other_sales_headers, pooled):
        resp = client.get(f"/api/customers/{pooled}", headers=other_sales_headers)
        assert resp.status_code == 200
        assert set(resp.json["data"]) == {"id", "name", "address", "isInPublicPool", "createdAt"}

        resp = client.get("/api/customers?isInPublicPool=true", headers=other_sales_headers)
        assert [c["id"] for c in resp.json["data"]["customers"]] == [pooled]
        assert "contactPhone" not in resp.json["data"]["customers"][0]

    def test_pool_listing(self, client, other_sales_headers, sales_user, pooled):
        resp = client.get("/api/public-pool", headers=other_sales_headers)
        assert resp.status_code == 200
        entries = resp.json["data"]["publicCustomers"]
        assert [e["id"] for e in entries] == [pooled]
        assert entries[0]["previousRelatedSalesName"] == "sales_a"

    def test_sales_claims_for_self(self, client, other_sales_headers, other_sales_user, pooled):
        resp = client.post(
            f"/api/public-pool/{pooled}/assign",
            json={"targetId": other_sales_user.id, "targetType": UserRole.FACTORY_SALES},
            headers=other_sales_headers,
        )
        assert resp.status_code == 200
        data = resp.json["data"]
        assert data["isInPublicPool"] is False
        assert data["relatedSalesId"] == other_sales_user.id
        assert data["progress"] == CustomerProgress.SAMPLE_EVALUATION

        history = _history(client, other_sales_headers, pooled)
        assert history[0]["operationType"] == AssignmentType.CLAIM

    def test_claim_for_agent_brings_its_sales(self, client, admin_headers, sales_user, agent, pooled):
        resp = client.post(
            f"/api/public-pool/{pooled}/assign",
            json={"targetId": agent.id, "targetType": UserRole.AGENT},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json["data"]["relatedAgentId"] == agent.id
        assert resp.json["data"]["relatedSalesId"] == sales_user.id

    def test_sales_cannot_claim_for_other_sales(self, client, other_sales_headers, sales_user, pooled):
        resp = client.post(
            f"/api/public-pool/{pooled}/assign",
            json={"targetId": sales_user.id, "targetType": UserRole.FACTORY_SALES},
            headers=other_sales_headers,
        )
        assert resp.status_code == 403

    def test_claim_requires_pool_customer(self, client, admin_headers, sales_user, customer_payload):
        data = _create(client, admin_headers, customer_payload(sales_user.id, name="非公海客户"))
        resp = client.post(
            f"/api/public-pool/{data['id']}/assign",
            json={"targetId": sales_user.id, "targetType": UserRole.FACTORY_SALES},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_inventory_manager_cannot_browse_pool(self, client, inventory_headers, pooled):
        resp = client.get("/api/public-pool", headers=inventory_headers)
        assert resp.status_code == 403


class TestDirectAssignment:

    def test_admin_assigns_and_clears_agent(self, client, admin_headers, sales_user, other_sales_user, agent, customer_payload):
        data = _create(client, admin_headers, customer_payload(sales_user.id, relatedAgentId=agent.id))

        resp = client.post(
            f"/api/change_customers/{data['id']}/assign",
            json={"salesId": other_sales_user.id, "agentId": None},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json["data"] == {
            "salesId": other_sales_user.id,
            "salesName": "sales_b",
            "agentId": None,
            "agentName": None,
        }

        history = _history(client, admin_headers, data["id"])
        assert history[0]["operationType"] == AssignmentType.ASSIGN
        assert history[0]["fromRelatedAgentId"] == agent.id

    def test_omitted_agent_is_kept(self, client, admin_headers, sales_user, other_sales_user, agent, customer_payload):
        data = _create(client, admin_headers, customer_payload(sales_user.id, relatedAgentId=agent.id))

        resp = client.post(
            f"/api/change_customers/{data['id']}/assign",
            json={"salesId": other_sales_user.id},
            headers=admin_headers,
        )
        assert resp.json["data"]["agentId"] == agent.id

    def test_unknown_sales(self, client, admin_headers, sales_user, customer_payload):
        data = _create(client, admin_headers, customer_payload(sales_user.id))
        resp = client.post(
            f"/api/change_customers/{data['id']}/assign",
            json={"salesId": 999999},
            headers=admin_headers,
        )
        assert resp.status_code == 404


class TestFollowUps:

    def test_create_and_list(self, client, sales_headers, sales_user, customer_payload):
        data = _create(client, sales_headers, customer_payload(sales_user.id))
        resp = client.post("/api/followUpRecords", json={
            "customerId": data["id"], "title": "拜访", "content": "客户关注交期",
        }, headers=sales_headers)
        assert resp.status_code == 201
        assert resp.json["data"]["record"]["creatorType"] == UserRole.FACTORY_SALES

        resp = client.get(f"/api/followUpRecords/{data['id']}", headers=sales_headers)
        assert [r["title"] for r in resp.json["data"]["records"]] == ["拜访"]

    def test_blank_title_is_rejected(self, client, sales_headers, sales_user, customer_payload):
        data = _create(client, sales_headers, customer_payload(sales_user.id))
        resp = client.post("/api/followUpRecords", json={
            "customerId": data["id"], "title": "  ", "content": "内容",
        }, headers=sales_headers)
        assert resp.status_code == 400

    def test_only_creator_or_admin_deletes(self, client, sales_headers, other_sales_headers, admin_headers, sales_user, customer_payload):
        data = _create(client, sales_headers, customer_payload(sales_user.id))
        record = client.post("/api/followUpRecords", json={
            "customerId": data["id"], "title": "拜访", "content": "内容",
        }, headers=sales_headers).json["data"]["record"]

        resp = client.delete(f"/api/followUpRecords/{record['id']}", headers=other_sales_headers)
        assert resp.status_code == 403

        resp = client.delete(f"/api/followUpRecords/{record['id']}", headers=admin_headers)
        assert resp.status_code == 200


class TestProgressHistory:

    def test_manual_entry_and_query(self, client, sales_headers, sales_user, customer_payload):
        data = _create(client, sales_headers, customer_payload(sales_user.id))
        resp = client.post("/api/customer-progress", json={
            "customerId": data["id"],
            "fromProgress": CustomerProgress.SAMPLE_EVALUATION,
            "toProgress": CustomerProgress.TESTING,
            "remark": "样品已寄出",
        }, headers=sales_headers)
        assert resp.status_code == 201
        assert resp.json["data"]["operatorName"] == "sales_a"

        resp = client.get("/api/customer-progress", query_string={"progress": CustomerProgress.TESTING}, headers=sales_headers)
        assert [e["remark"] for e in resp.json["data"]] == ["样品已寄出"]

        resp = client.get("/api/customer-progress", query_string={"progress": CustomerProgress.SAMPLE_EVALUATION}, headers=sales_headers)
        assert len(resp.json["data"]) == 2

    def test_date_range_excludes_older_entries(self, client, sales_headers, sales_user, customer_payload):
        _create(client, sales_headers, customer_payload(sales_user.id))
        resp = client.get("/api/customer-progress", query_string={"endDate": "2000-01-01"}, headers=sales_headers)
        assert resp.status_code == 200
        assert resp.json["data"] == []

    def test_bad_date_is_rejected(self, client, sales_headers):
        resp = client.get("/api/customer-progress", query_string={"startDate": "yesterday"}, headers=sales_headers)
        assert resp.status_code == 400

    def test_missing_fields(self, client, sales_headers):
        resp = client.post("/api/customer-progress", json={"customerId": 1}, headers=sales_headers)
        assert resp.status_code == 400

    def test_unknown_customer(self, client, sales_headers):
        resp = client.post("/api/customer-progress", json={
            "customerId": 999999,
            "fromProgress": PROGRESS_NONE,
            "toProgress": CustomerProgress.SAMPLE_EVALUATION,
        }, headers=sales_headers)
        assert resp.status_code == 404
