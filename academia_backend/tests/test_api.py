import pytest


def course_rule(name, *course_ids, operator="AND", minimum_grade=None):
    return {
        "name": name,
        "logic_operator": operator,
        "requirements": [
            {"requirement_type": "Course", "required_course_id": cid, "minimum_grade": minimum_grade}
            for cid in course_ids
        ],
    }


@pytest.fixture
def catalog(client):
    resp = client.post(
        "/api/courses",
        json={
            "courses": [
                {"code": "CS101", "title": "Intro to Programming", "credits": 3},
                {"code": "CS201", "title": "Data Structures", "credits": 3},
                {"code": "CS301", "title": "Algorithms", "credits": 4},
                {"code": "CS301L", "title": "Algorithms Lab", "credits": 1},
            ]
        },
    )
    assert resp.status_code == 200
    return {c["code"]: c["id"] for c in resp.json()}


@pytest.fixture
def chain(client, catalog):
    """CS101 -> CS201 -> CS301; returns the CS301 requirement id."""
    resp = client.put(
        f"/api/courses/{catalog['CS201']}/prerequisites",
        json={"rules": [course_rule("Intro", catalog["CS101"], minimum_grade="C")]},
    )
    assert resp.status_code == 200
    resp = client.put(
        f"/api/courses/{catalog['CS301']}/prerequisites",
        json={"rules": [course_rule("Data structures", catalog["CS201"], minimum_grade="C")]},
    )
    assert resp.status_code == 200
    return resp.json()[0]["requirements"][0]["id"]


@pytest.fixture
def student(client, catalog):
    resp = client.post(
        "/api/students",
        json={
            "first_name": "Ada",
            "last_name": "Lovelace",
            "student_number": "S-1001",
            "major": "CS",
            "class_standing": "junior",
        },
    )
    assert resp.status_code == 200
    body = resp.json()
    client.post(
        f"/api/students/{body['id']}/completed-courses",
        json={"courses": [{"course_id": catalog["CS101"], "grade": "B", "term": "Fall 2024"}]},
    )
    return body["id"]


def eligibility(client, student_id, course_id):
    resp = client.get(f"/api/students/{student_id}/courses/{course_id}/eligibility")
    assert resp.status_code == 200
    return resp.json()


class TestCatalog:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_get_missing_course(self, client):
        resp = client.get("/api/courses/999")
        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"

    def test_nested_rules_round_trip(self, client, catalog):
        payload = {
            "rules": [
                {
                    "name": "Core",
                    "requirements": [{"requirement_type": "ClassStanding", "required_class_standing": "Sophomore"}],
                    "nested_rules": [course_rule("Either", catalog["CS101"], catalog["CS201"], operator="OR")],
                }
            ]
        }
        resp = client.put(f"/api/courses/{catalog['CS301']}/prerequisites", json=payload)
        assert resp.status_code == 200
        rules = client.get(f"/api/courses/{catalog['CS301']}/prerequisites").json()
        assert len(rules) == 1
        assert rules[0]["nested_rules"][0]["logic_operator"] == "OR"
        assert len(rules[0]["nested_rules"][0]["requirements"]) == 2

    def test_cycle_is_rejected_and_nothing_saved(self, client, catalog, chain):
        resp = client.put(
            f"/api/courses/{catalog['CS101']}/prerequisites",
            json={"rules": [course_rule("Loop", catalog["CS301"])]},
        )
        assert resp.status_code == 409
        body = resp.json()
        assert body["error"] == "circular_dependency"
        assert body["circular_path"] == [catalog["CS101"], catalog["CS301"], catalog["CS201"], catalog["CS101"]]
        assert client.get(f"/api/courses/{catalog['CS101']}/prerequisites").json() == []

    def test_self_prerequisite_is_a_cycle(self, client, catalog):
        resp = client.put(
            f"/api/courses/{catalog['CS101']}/prerequisites",
            json={"rules": [course_rule("Self", catalog["CS101"])]},
        )
        assert resp.status_code == 409

    def test_inactive_parent_does_not_constrain_catalog(self, client, catalog, chain):
        dormant = {
            "name": "Dormant",
            "is_active": False,
            "nested_rules": [course_rule("Loop", catalog["CS301"])],
        }
        resp = client.put(f"/api/courses/{catalog['CS101']}/prerequisites", json={"rules": [dormant]})
        assert resp.status_code == 200

        dormant["is_active"] = True
        resp = client.put(f"/api/courses/{catalog['CS101']}/prerequisites", json={"rules": [dormant]})
        assert resp.status_code == 409

    def test_bad_configuration_is_rejected(self, client, catalog, chain):
        resp = client.put(
            f"/api/courses/{catalog['CS301']}/prerequisites",
            json={"rules": [course_rule("Broken", 999, minimum_grade="Q")]},
        )
        assert resp.status_code == 422
        assert resp.json()["error"] == "rule_configuration_invalid"
        assert len(resp.json()["problems"]) == 2
        existing = client.get(f"/api/courses/{catalog['CS301']}/prerequisites").json()
        assert existing[0]["name"] == "Data structures"

    def test_missing_requirement_field(self, client, catalog):
        resp = client.put(
            f"/api/courses/{catalog['CS301']}/prerequisites",
            json={"rules": [{"name": "GPA", "requirements": [{"requirement_type": "GPA"}]}]},
        )
        assert resp.status_code == 422
        assert "minimum_gpa" in resp.json()["detail"]

    def test_validate_chain_without_saving(self, client):
        resp = client.post("/api/catalog/validate-chain", json={"edges": [[301, 302], [302, 303], [303, 301]]})
        assert resp.status_code == 200
        assert resp.json()["is_valid"] is False
        assert resp.json()["circular_path"] == [301, 302, 303, 301]

    def test_prerequisite_order(self, client, catalog, chain):
        body = client.get("/api/catalog/prerequisite-order").json()
        order = body["order"]
        assert order.index(catalog["CS101"]) < order.index(catalog["CS201"]) < order.index(catalog["CS301"])
        assert body["levels"][str(catalog["CS301"])] == 2

    def test_empty_restriction_rejected(self, client, catalog):
        resp = client.post(f"/api/courses/{catalog['CS301']}/restrictions", json={"name": "Nothing"})
        assert resp.status_code == 422


class TestStudents:
    def test_standing_is_normalised(self, client, student):
        assert client.get(f"/api/students/{student}").json()["class_standing"] == "Junior"

    def test_unknown_standing(self, client):
        resp = client.post(
            "/api/students", json={"first_name": "A", "last_name": "B", "class_standing": "Alumnus"}
        )
        assert resp.status_code == 422

    def test_repost_keeps_unsent_fields(self, client, student):
        resp = client.post(
            "/api/students",
            json={"first_name": "Ada", "last_name": "King", "student_number": "S-1001"},
        )
        assert resp.json()["id"] == student
        assert resp.json()["last_name"] == "King"
        assert resp.json()["class_standing"] == "Junior"
        assert resp.json()["major"] == "CS"

    def test_lookup_by_student_number(self, client, student):
        resp = client.get("/api/students/lookup", params={"student_number": "S-1001"})
        assert resp.json()["id"] == student

    def test_gpa_uses_course_credits(self, client, student):
        assert client.get(f"/api/students/{student}/gpa").json() == {
            "student_id": student,
            "gpa": 3.0,
            "credits": 3,
        }

    def test_completed_course_must_exist(self, client, student):
        resp = client.post(
            f"/api/students/{student}/completed-courses",
            json={"courses": [{"course_id": 999, "grade": "A"}]},
        )
        assert resp.status_code == 404


class TestEligibility:
    def test_direct_prerequisite_met(self, client, catalog, chain, student):
        result = eligibility(client, student, catalog["CS201"])
        assert result["is_valid"] is True
        assert result["overall_status"] == "Satisfied"

    def test_missing_prerequisite(self, client, catalog, chain, student):
        result = eligibility(client, student, catalog["CS301"])
        assert result["is_valid"] is False
        missing = result["missing_requirements"][0]
        assert missing["course_name"] == "CS201"
        assert missing["priority"] == "Critical"

    def test_course_without_rules(self, client, catalog, student):
        assert eligibility(client, student, catalog["CS101"])["is_valid"] is True

    def test_corequisite_through_schedule(self, client, catalog, student):
        resp = client.post(
            f"/api/courses/{catalog['CS301']}/corequisites",
            json={"name": "Lab", "requirements": [{"required_course_id": catalog["CS301L"]}]},
        )
        assert resp.status_code == 201
        assert eligibility(client, student, catalog["CS301"])["is_valid"] is False

        client.post(f"/api/students/{student}/schedule", json={"course_ids": [catalog["CS301L"]], "term": "Fall 2025"})
        assert eligibility(client, student, catalog["CS301"])["is_valid"] is True

    def test_major_restriction(self, client, catalog, student):
        resp = client.post(
            f"/api/courses/{catalog['CS201']}/restrictions",
            json={"name": "Majors only", "majors": [{"major_code": "MATH"}]},
        )
        assert resp.status_code == 201
        result = eligibility(client, student, catalog["CS201"])
        assert result["restriction_results"][0]["blocks_enrollment"] is True

    def test_permission_grant(self, client, catalog, student):
        client.put(
            f"/api/courses/{catalog['CS301']}/prerequisites",
            json={"rules": [{"name": "Consent", "requirements": [
                {"requirement_type": "PermissionRequired", "required_permission": "Instructor"}
            ]}]},
        )
        assert eligibility(client, student, catalog["CS301"])["is_valid"] is False
        resp = client.post(
            f"/api/students/{student}/permissions",
            json={"permission": "Instructor", "course_id": catalog["CS301"], "granted_by": "prof.knuth"},
        )
        assert resp.status_code == 201
        assert eligibility(client, student, catalog["CS301"])["is_valid"] is True


class TestOverrides:
    def request(self, client, student, course_id, requirement_id, path="/api/overrides"):
        return client.post(
            path,
            json={
                "student_id": student,
                "course_id": course_id,
                "justification": "Equivalent course at previous school",
                "requested_by": "advisor.kim",
                "requirement_ids": [requirement_id],
            },
        )

    def test_full_override_lifecycle(self, client, catalog, chain, student):
        resp = self.request(client, student, catalog["CS301"], chain)
        assert resp.status_code == 201
        override = resp.json()
        assert override["status"] == "Pending"
        assert [e["action"] for e in override["audit_trail"]] == ["requested"]
        assert eligibility(client, student, catalog["CS301"])["is_valid"] is False

        resp = client.post(
            f"/api/overrides/{override['id']}/review",
            json={"decision": "Approve", "reviewer": "registrar.ortiz", "reviewer_role": "Registrar"},
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "Approved"

        result = eligibility(client, student, catalog["CS301"])
        assert result["is_valid"] is True
        assert result["requirement_results"][0]["status"] == "Overridden"
        assert result["applied_exceptions"] == [f"override:{override['id']}"]

        resp = client.post(
            f"/api/overrides/{override['id']}/revoke",
            json={"reviewer": "registrar.ortiz", "reviewer_role": "registrar", "reason": "Transcript did not arrive"},
        )
        assert resp.json()["status"] == "Revoked"
        assert [e["action"] for e in resp.json()["audit_trail"]] == ["requested", "approved", "revoked"]
        assert eligibility(client, student, catalog["CS301"])["is_valid"] is False

    def approve(self, client, override_id):
        resp = client.post(
            f"/api/overrides/{override_id}/review",
            json={"decision": "Approve", "reviewer": "registrar.ortiz", "reviewer_role": "registrar"},
        )
        assert resp.status_code == 200

    def test_override_does_not_carry_over_to_replaced_rules(self, client, catalog, chain, student):
        override = self.request(client, student, catalog["CS301"], chain).json()
        self.approve(client, override["id"])
        assert eligibility(client, student, catalog["CS301"])["is_valid"] is True

        resp = client.put(
            f"/api/courses/{catalog['CS301']}/prerequisites",
            json={"rules": [course_rule("Lab first", catalog["CS301L"])]},
        )
        assert resp.status_code == 200
        assert resp.json()[0]["requirements"][0]["id"] != chain

        assert client.get(f"/api/overrides/{override['id']}").json()["requirement_ids"] == []
        result = eligibility(client, student, catalog["CS301"])
        assert result["is_valid"] is False
        assert result["requirement_results"][0]["status"] == "NotSatisfied"
        assert result["applied_exceptions"] == []

    @pytest.mark.parametrize(
        "expires_on,stored",
        [
            ("2099-01-01T00:00:00Z", "2099-01-01T00:00:00"),
            ("2099-01-01T02:00:00+02:00", "2099-01-01T00:00:00"),
        ],
    )
    def test_timezone_aware_expiry(self, client, catalog, chain, student, expires_on, stored):
        resp = client.post(
            "/api/overrides",
            json={
                "student_id": student,
                "course_id": catalog["CS301"],
                "justification": "Equivalent course at previous school",
                "requested_by": "advisor.kim",
                "requirement_ids": [chain],
                "expires_on": expires_on,
            },
        )
        assert resp.status_code == 201
        assert resp.json()["expires_on"] == stored
        self.approve(client, resp.json()["id"])
        assert eligibility(client, student, catalog["CS301"])["is_valid"] is True

    def test_denied_waiver_has_no_effect(self, client, catalog, chain, student):
        waiver = self.request(client, student, catalog["CS301"], chain, path="/api/waivers").json()
        assert waiver["kind"] == "waiver"
        client.post(
            f"/api/waivers/{waiver['id']}/review",
            json={"decision": "Deny", "reviewer": "dr.chair", "reviewer_role": "department_chair"},
        )
        assert client.get(f"/api/waivers/{waiver['id']}").json()["status"] == "Denied"
        assert eligibility(client, student, catalog["CS301"])["is_valid"] is False

    def test_unauthorized_reviewer(self, client, catalog, chain, student):
        override = self.request(client, student, catalog["CS301"], chain).json()
        resp = client.post(
            f"/api/overrides/{override['id']}/review",
            json={"decision": "Approve", "reviewer": "ada", "reviewer_role": "student"},
        )
        assert resp.status_code == 403
        assert client.get(f"/api/overrides/{override['id']}").json()["status"] == "Pending"

    def test_second_review_conflicts(self, client, catalog, chain, student):
        override = self.request(client, student, catalog["CS301"], chain).json()
        review = {"decision": "Deny", "reviewer": "reg", "reviewer_role": "registrar"}
        client.post(f"/api/overrides/{override['id']}/review", json=review)
        resp = client.post(f"/api/overrides/{override['id']}/review", json=review)
        assert resp.status_code == 409
        assert resp.json()["error"] == "invalid_transition"

    def test_requirement_must_belong_to_course(self, client, catalog, chain, student):
        resp = self.request(client, student, catalog["CS201"], chain)
        assert resp.status_code == 404

    def test_list_filters_by_student(self, client, catalog, chain, student):
        self.request(client, student, catalog["CS301"], chain)
        assert len(client.get("/api/overrides", params={"student_id": student}).json()) == 1
        assert client.get("/api/overrides", params={"student_id": student + 1}).json() == []
