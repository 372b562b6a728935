from decimal import Decimal

from reactive_hub.models.enums import JobStatus, Role
from reactive_hub.models.models import Assignment, Job

from conftest import LONDON, auth_headers


def test_health_and_request_id(client):
    resp = client.get("/health", headers={"X-Request-ID": "abc-123"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.headers["X-Request-ID"] == "abc-123"


class TestAuth:
    def test_register_contractor_login_and_me(self, client):
        resp = client.post("/auth/register", json={
            "email": "Pat.Plumber@example.com",
            "password": "supersecret",
            "role": "SUBCONTRACTOR",
            "first_name": "Pat",
            "skills": ["plumbing"],
            "latitude": LONDON[0],
            "longitude": LONDON[1],
        })
        assert resp.status_code == 201
        body = resp.json()
        assert body["user"]["email"] == "pat.plumber@example.com"
        assert body["user"]["contractor_profile"]["skills"] == ["plumbing"]

        login = client.post("/auth/login", json={"email": "pat.plumber@example.com", "password": "supersecret"})
        assert login.status_code == 200
        token = login.json()["access_token"]

        me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["role"] == "SUBCONTRACTOR"

    def test_admin_self_registration_refused(self, client):
        resp = client.post("/auth/register", json={"email": "root@example.com", "password": "supersecret", "role": "ADMIN"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "ValidationError"

    def test_contractor_needs_skills(self, client):
        resp = client.post("/auth/register", json={"email": "x@example.com", "password": "supersecret", "role": "SUBCONTRACTOR"})
        assert resp.status_code == 400

    def test_duplicate_email_conflicts(self, client, customer):
        resp = client.post("/auth/register", json={"email": customer.email, "password": "supersecret", "role": "CUST_RESIDENTIAL"})
        assert resp.status_code == 409
        assert resp.json()["error"] == "Conflict"

    def test_wrong_password(self, client, customer):
        resp = client.post("/auth/login", json={"email": customer.email, "password": "nope-nope"})
        assert resp.status_code == 401

    def test_missing_and_bad_tokens(self, client):
        assert client.get("/jobs").status_code == 401
        assert client.get("/jobs", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401


class TestJobs:
    def test_create_job_and_validation_errors(self, client, customer):
        resp = client.post("/jobs", headers=auth_headers(customer), json={
            "title": "Replace fuse box",
            "description": "Old fuse box trips whenever the kettle is on",
            "budget": 350,
            "location": "Camden, London",
            "latitude": LONDON[0],
            "longitude": LONDON[1],
        })
        assert resp.status_code == 201
        assert resp.json()["status"] == "OPEN"
        assert resp.json()["budget"] == 350.0

        bad = client.post("/jobs", headers=auth_headers(customer), json={
            "title": "Hi", "description": "short", "latitude": 91,
        })
        assert bad.status_code == 400
        body = bad.json()
        assert body["error"] == "ValidationError"
        assert body["detail"] == "Validation failed"
        assert {e["loc"][-1] for e in body["errors"]} >= {"title", "description", "latitude"}

    def test_contractor_cannot_post_jobs(self, client, contractor):
        resp = client.post("/jobs", headers=auth_headers(contractor), json={
            "title": "Valid title", "description": "A long enough description",
        })
        assert resp.status_code == 403

    def test_list_is_role_filtered(self, client, customer, contractor, make_user, make_job):
        mine = make_job(customer)
        make_job(customer, status=JobStatus.DRAFT, title="Draft job")
        other_customer = make_user(Role.CUST_RESIDENTIAL)
        make_job(other_customer, title="Someone else's")

        own = client.get("/jobs", headers=auth_headers(customer)).json()
        assert len(own) == 2

        visible = client.get("/jobs", headers=auth_headers(contractor)).json()
        assert mine.id in {j["id"] for j in visible}
        assert all(j["status"] == "OPEN" for j in visible)

        drafts = client.get("/jobs", params={"status": "DRAFT"}, headers=auth_headers(customer)).json()
        assert [j["title"] for j in drafts] == ["Draft job"]

    def test_job_detail_hides_contact_until_unlocked(self, client, customer, contractor, make_job):
        job = make_job(customer, unlock_fee=Decimal("15"))

        before = client.get(f"/jobs/{job.id}", headers=auth_headers(contractor))
        assert before.status_code == 200
        assert before.json()["customer_contact"] is None

        unlock = client.post(f"/jobs/{job.id}/unlock", headers=auth_headers(contractor))
        assert unlock.status_code == 200
        body = unlock.json()
        assert body["unlock"]["paid_amount"] == 15.0
        assert body["job"]["customer_contact"]["email"] == customer.email
        assert body["job"]["customer_contact"]["address"] == "221B Baker Street, London"

        after = client.get(f"/jobs/{job.id}", headers=auth_headers(contractor))
        assert after.json()["customer_contact"]["phone"] == customer.phone

        again = client.post(f"/jobs/{job.id}/unlock", headers=auth_headers(contractor))
        assert again.status_code == 409

    def test_contractor_cannot_view_other_peoples_assigned_job(self, client, customer, contractor, make_user, assigned_job):
        job = assigned_job(customer, make_user(Role.SUBCONTRACTOR))
        assert client.get(f"/jobs/{job.id}", headers=auth_headers(contractor)).status_code == 403

    def test_unknown_job_is_404(self, client, admin):
        resp = client.get("/jobs/9999", headers=auth_headers(admin))
        assert resp.status_code == 404
        assert resp.json() == {"detail": "Job not found", "error": "NotFound"}


class TestMatches:
    def test_ranked_matches_for_admin(self, client, admin, customer, make_user, make_job):
        near = make_user(Role.SUBCONTRACTOR, latitude=LONDON[0] + 0.045, longitude=LONDON[1])
        make_user(Role.SUBCONTRACTOR, latitude=LONDON[0] + 1.35, longitude=LONDON[1])
        job = make_job(customer, location="Westminster")

        resp = client.get(f"/jobs/{job.id}/matches", params={"max_distance": 100}, headers=auth_headers(admin))

        assert resp.status_code == 200
        body = resp.json()
        assert body["job"] == {"id": job.id, "title": job.title, "location": "Westminster"}
        assert body["total_found"] == 1
        assert body["matches"][0]["id"] == near.id
        assert body["matches"][0]["distance_km"] == 5.0

    def test_job_without_location(self, client, admin, customer, make_job):
        job = make_job(customer, latitude=None, longitude=None)
        resp = client.get(f"/jobs/{job.id}/matches", headers=auth_headers(admin))
        assert resp.status_code == 400
        assert resp.json()["error"] == "InvalidLocation"

    def test_bad_limit(self, client, admin, customer, make_job):
        job = make_job(customer)
        resp = client.get(f"/jobs/{job.id}/matches", params={"limit": 0}, headers=auth_headers(admin))
        assert resp.status_code == 400

    def test_admin_only(self, client, customer, make_job):
        job = make_job(customer)
        assert client.get(f"/jobs/{job.id}/matches", headers=auth_headers(customer)).status_code == 403


class TestWorkflow:
    def test_bid_accept_schedule_complete_approve(self, client, db, customer, contractor, make_job):
        job = make_job(customer)

        bid = client.post(f"/jobs/{job.id}/bid", headers=auth_headers(contractor), json={"amount": 500, "notes": "Two days"})
        assert bid.status_code == 201
        dup = client.post(f"/jobs/{job.id}/bid", headers=auth_headers(contractor), json={"amount": 450})
        assert dup.status_code == 409
        assert dup.json()["error"] == "Conflict"

        accepted = client.post(f"/jobs/{job.id}/bids/{bid.json()['id']}/accept", headers=auth_headers(customer))
        assert accepted.status_code == 200
        body = accepted.json()
        assert body["job"]["status"] == "ASSIGNED"
        assert body["job"]["contractor_pay_rate"] == 500.0
        assert body["job"]["active_assignment"]["user_id"] == contractor.id

        scheduled = client.post(
            f"/jobs/{job.id}/schedule", headers=auth_headers(contractor),
            json={"scheduled_date": "2030-01-15T09:00:00Z"},
        )
        assert scheduled.status_code == 200
        assert scheduled.json()["status"] == "SCHEDULED"

        started = client.patch(f"/jobs/{job.id}/status", headers=auth_headers(contractor), json={"status": "IN_PROGRESS"})
        assert started.status_code == 200

        done = client.post(f"/signoff/jobs/{job.id}/complete", headers=auth_headers(contractor), json={"completion_notes": "Finished"})
        assert done.status_code == 200
        assert done.json()["signoff"]["status"] == "PENDING"

        pending = client.get("/signoff/pending", headers=auth_headers(customer)).json()
        assert [j["id"] for j in pending] == [job.id]

        approved = client.post(f"/signoff/jobs/{job.id}/approve", headers=auth_headers(customer), json={"rating": 4})
        assert approved.status_code == 200
        assert approved.json()["signoff"]["status"] == "APPROVED"
        assert approved.json()["review"]["rating"] == 4

        status = client.get(f"/signoff/jobs/{job.id}/signoff", headers=auth_headers(contractor)).json()
        assert status["job_status"] == "COMPLETED"
        assert status["contractor"]["id"] == contractor.id

        db.expire_all()
        assert db.get(Job, job.id).status == JobStatus.COMPLETED
        assert db.query(Assignment).filter(Assignment.job_id == job.id, Assignment.active.is_(True)).count() == 1

    def test_direct_assign_twice(self, client, admin, customer, contractor, make_user, make_job):
        job = make_job(customer)
        first = client.post(f"/jobs/{job.id}/assign", headers=auth_headers(admin), json={"contractor_id": contractor.id})
        assert first.status_code == 200
        assert first.json()["assignment"]["active"] is True

        second = client.post(
            f"/jobs/{job.id}/assign", headers=auth_headers(admin),
            json={"contractor_id": make_user(Role.SUBCONTRACTOR).id},
        )
        assert second.status_code == 400
        assert second.json()["error"] == "InvalidState"

    def test_quote_round_trip(self, client, admin, make_user, make_job):
        commercial = make_user(Role.CUST_COMMERCIAL)
        job = make_job(commercial, status=JobStatus.DRAFT)

        early = client.post(f"/jobs/{job.id}/accept-quote", headers=auth_headers(commercial))
        assert early.status_code == 400

        quote = client.post(f"/jobs/{job.id}/quote", headers=auth_headers(admin), json={
            "quote_amount": 1800, "contractor_pay_type": "FIXED", "contractor_pay_rate": 1200,
        })
        assert quote.status_code == 200
        assert quote.json()["status"] == "PENDING_QUOTE"

        accepted = client.post(f"/jobs/{job.id}/accept-quote", headers=auth_headers(commercial))
        assert accepted.status_code == 200
        assert accepted.json()["status"] == "OPEN"
        assert accepted.json()["quote_accepted"] is True

    def test_dispute_and_resolve(self, client, admin, customer, contractor, assigned_job):
        job = assigned_job(customer, contractor, status=JobStatus.IN_PROGRESS)
        client.post(f"/signoff/jobs/{job.id}/complete", headers=auth_headers(contractor), json={})

        short = client.post(f"/signoff/jobs/{job.id}/dispute", headers=auth_headers(customer), json={"dispute_reason": "meh"})
        assert short.status_code == 400
        assert short.json()["detail"] == "Please provide a detailed dispute reason"

        disputed = client.post(
            f"/signoff/jobs/{job.id}/dispute", headers=auth_headers(customer),
            json={"dispute_reason": "Paint job was left unfinished"},
        )
        assert disputed.status_code == 200
        assert disputed.json()["job"]["status"] == "IN_PROGRESS"

        listed = client.get("/signoff/disputed", headers=auth_headers(admin)).json()
        assert listed[0]["signoff"]["status"] == "DISPUTED"

        resolved = client.post(f"/signoff/jobs/{job.id}/resolve", headers=auth_headers(admin), json={"resolution": "approved"})
        assert resolved.status_code == 200
        assert resolved.json()["signoff"]["status"] == "APPROVED"
        assert resolved.json()["job"]["status"] == "COMPLETED"

    def test_any_other_resolution_sends_signoff_back(self, client, admin, customer, contractor, assigned_job):
        job = assigned_job(customer, contractor, status=JobStatus.IN_PROGRESS)
        client.post(f"/signoff/jobs/{job.id}/complete", headers=auth_headers(contractor), json={})
        client.post(
            f"/signoff/jobs/{job.id}/dispute", headers=auth_headers(customer),
            json={"dispute_reason": "Paint job was left unfinished"},
        )

        resolved = client.post(
            f"/signoff/jobs/{job.id}/resolve", headers=auth_headers(admin),
            json={"resolution": "needs another visit", "resolution_notes": "Second coat outstanding"},
        )
        assert resolved.status_code == 200
        assert resolved.json()["signoff"]["status"] == "PENDING"
        assert resolved.json()["job"]["status"] == "IN_PROGRESS"

        approved = client.post(f"/signoff/jobs/{job.id}/approve", headers=auth_headers(customer), json={"rating": 4})
        assert approved.status_code == 200
        assert approved.json()["job"]["status"] == "COMPLETED"

    def test_cancel(self, client, customer, make_job):
        job = make_job(customer)
        resp = client.post(f"/jobs/{job.id}/cancel", headers=auth_headers(customer))
        assert resp.status_code == 200
        assert resp.json()["status"] == "CANCELLED"
        assert client.post(f"/jobs/{job.id}/cancel", headers=auth_headers(customer)).status_code == 400


class TestSubscriptions:
    def test_subscribe_view_and_cancel(self, client, contractor):
        empty = client.get("/subscriptions/me", headers=auth_headers(contractor)).json()
        assert empty == {"has_subscription": False, "subscription": None}

        created = client.post("/subscriptions", headers=auth_headers(contractor), json={"type": "ANNUAL"})
        assert created.status_code == 201
        assert created.json()["is_active"] is True

        cancelled = client.delete("/subscriptions", headers=auth_headers(contractor))
        assert cancelled.status_code == 200

        mine = client.get("/subscriptions/me", headers=auth_headers(contractor)).json()
        assert mine["has_subscription"] is True
        assert mine["subscription"]["is_active"] is False

    def test_customers_cannot_subscribe(self, client, customer):
        assert client.post("/subscriptions", headers=auth_headers(customer), json={"type": "MONTHLY"}).status_code == 403

    def test_cancel_without_subscription(self, client, contractor):
        resp = client.delete("/subscriptions", headers=auth_headers(contractor))
        assert resp.status_code == 404


class TestCapabilityGuards:
    def test_employee_has_no_job_capabilities(self, client, make_user, customer, make_job):
        employee = make_user(Role.EMPLOYEE)
        job = make_job(customer)
        headers = auth_headers(employee)

        assert client.post("/jobs", headers=headers, json={
            "title": "Valid title", "description": "A long enough description",
        }).status_code == 403
        assert client.post(f"/jobs/{job.id}/bid", headers=headers, json={"amount": 50}).status_code == 403
        assert client.post(f"/jobs/{job.id}/unlock", headers=headers).status_code == 403
        assert client.post("/subscriptions", headers=headers, json={"type": "MONTHLY"}).status_code == 403

    def test_admin_posts_jobs_but_does_not_unlock_or_subscribe(self, client, admin, customer, make_job):
        job = make_job(customer)
        headers = auth_headers(admin)

        created = client.post("/jobs", headers=headers, json={
            "title": "Office lighting", "description": "Replace ceiling panels on floor two",
        })
        assert created.status_code == 201
        assert client.post(f"/jobs/{job.id}/unlock", headers=headers).status_code == 403
        assert client.delete("/subscriptions", headers=headers).status_code == 403
        assert client.post(f"/jobs/{job.id}/accept-quote", headers=headers).status_code == 403


class TestAuditTrail:
    def test_admin_reads_job_history_newest_first(self, client, admin, customer, contractor):
        created = client.post("/jobs", headers=auth_headers(customer), json={
            "title": "Garden fence", "description": "Replace three broken fence panels",
        }).json()
        bid = client.post(f"/jobs/{created['id']}/bid", headers=auth_headers(contractor), json={"amount": 300}).json()
        client.post(f"/jobs/{created['id']}/bids/{bid['id']}/accept", headers=auth_headers(customer))

        resp = client.get(f"/jobs/{created['id']}/audit", headers=auth_headers(admin))

        assert resp.status_code == 200
        entries = resp.json()
        assert [e["action"] for e in entries] == ["ACCEPT_BID", "CREATE"]
        assert entries[0]["actor_id"] == customer.id
        assert entries[0]["changes_json"]["status"] == {"before": "OPEN", "after": "ASSIGNED"}
        assert all(len(e["integrity_hash"]) == 64 for e in entries)

    def test_paging(self, client, admin, customer):
        created = client.post("/jobs", headers=auth_headers(customer), json={
            "title": "Garden fence", "description": "Replace three broken fence panels",
        }).json()
        client.post(f"/jobs/{created['id']}/cancel", headers=auth_headers(customer))

        page = client.get(f"/jobs/{created['id']}/audit?limit=1&offset=1", headers=auth_headers(admin)).json()
        assert [e["action"] for e in page] == ["CREATE"]

    def test_admin_only_and_missing_job(self, client, admin, customer, make_job):
        job = make_job(customer)
        assert client.get(f"/jobs/{job.id}/audit", headers=auth_headers(customer)).status_code == 403
        assert client.get("/jobs/9999/audit", headers=auth_headers(admin)).status_code == 404
