import pytest
from fastapi.testclient import TestClient

from raremd.main import create_app

GAUCHER_SYMPTOMS = [
    {"hpoId": "HP:0001744", "label": "Splenomegaly"},
    {"hpoId": "HP:0002240", "label": "Hepatomegaly"},
    {"hpoId": "HP:0001903", "label": "Anemia"},
    {"hpoId": "HP:0000938", "label": "Osteopenia"},
]


def create_case(client, **overrides) -> dict:
    payload = {"patientId": "P-001", "age": 30, "sex": "male", "symptoms": GAUCHER_SYMPTOMS}
    payload.update(overrides)
    r = client.post("/api/v1/cases", json=payload)
    assert r.status_code == 201
    return r.json()


def test_root_and_health(client):
    root = client.get("/").json()
    assert root["name"] == "RareMD Assist"
    assert root["status"] == "operational"

    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "healthy"
    assert body["checks"]["storage"] is True
    assert body["checks"]["hpo_catalog"] is True
    assert body["checks"]["orphadata_configured"] is False


def test_every_response_carries_tracing_headers(client):
    r = client.get("/api/v1/diseases")
    assert r.headers["X-Request-ID"]
    assert int(r.headers["X-Processing-Time-Ms"]) >= 0


def test_knowledge_base_seeded_on_startup(client):
    diseases = client.get("/api/v1/diseases").json()
    assert len(diseases) == 15
    assert client.get("/api/v1/analytics").json()["knowledgeBaseSize"] == 15


def test_unseeded_knowledge_base_starts_empty(settings, repository):
    app = create_app(settings.model_copy(update={"seed_knowledge_base": False}), repository=repository)
    with TestClient(app) as client:
        assert client.get("/api/v1/diseases").json() == []


# ============================================================================
# Analyze
# ============================================================================

def test_analyze_ranks_gaucher_first(client):
    r = client.post("/api/v1/analyze", json={"symptoms": GAUCHER_SYMPTOMS})

    assert r.status_code == 200
    results = r.json()
    assert 0 < len(results) <= 10
    top = results[0]
    assert top["disease"]["orphaCode"] == "ORPHA:355"
    assert top["keyMatches"] == 3
    assert top["supportingMatches"] == 1
    assert top["score"] == 7
    assert top["priority"] == "high"
    scores = [m["score"] for m in results]
    assert scores == sorted(scores, reverse=True)


def test_analyze_empty_symptoms(client):
    r = client.post("/api/v1/analyze", json={"symptoms": []})
    assert r.status_code == 200
    assert r.json() == []


def test_analyze_unknown_phenotype_returns_nothing(client):
    r = client.post("/api/v1/analyze", json={"symptoms": [{"hpoId": "HP:9999999", "label": "Nothing"}]})
    assert r.json() == []


@pytest.mark.parametrize("payload", [
    {"symptoms": "HP:0001744"},
    {"symptoms": {"hpoId": "HP:0001744"}},
    {"symptoms": [{"label": "missing id"}]},
    {},
])
def test_analyze_rejects_invalid_payload(client, payload):
    r = client.post("/api/v1/analyze", json=payload)

    assert r.status_code == 400
    body = r.json()
    assert body["error"] == "VALIDATION_ERROR"
    assert body["details"]["errors"]
    assert body["request_id"] == r.headers["X-Request-ID"]


# ============================================================================
# Cases and analytics
# ============================================================================

def test_case_lifecycle_updates_analytics(client):
    case = create_case(client, score=7)
    assert case["id"] == 1
    assert case["status"] == "active"

    r = client.put(f"/api/v1/cases/{case['id']}", json={"status": "diagnosed", "diagnosis": "Gaucher disease"})
    assert r.status_code == 200
    assert r.json()["status"] == "diagnosed"
    assert r.json()["patientId"] == "P-001"

    analytics = client.get("/api/v1/analytics").json()
    assert analytics["totalCases"] == 1
    assert analytics["alertsGenerated"] == 1
    assert analytics["diagnosedCases"] == 1

    assert client.delete(f"/api/v1/cases/{case['id']}").status_code == 204
    assert client.get(f"/api/v1/cases/{case['id']}").status_code == 404


def test_cases_listed_newest_first(client):
    create_case(client, patientId="A")
    create_case(client, patientId="B")

    assert [c["patientId"] for c in client.get("/api/v1/cases").json()] == ["B", "A"]


def test_case_not_found_paths(client):
    r = client.get("/api/v1/cases/404")
    assert r.status_code == 404
    assert r.json()["error"] == "HTTP_404"
    assert client.put("/api/v1/cases/404", json={"age": 3}).status_code == 404
    assert client.delete("/api/v1/cases/404").status_code == 404


def test_create_case_validation(client):
    r = client.post("/api/v1/cases", json={"patientId": "   ", "symptoms": []})
    assert r.status_code == 400

    r = client.post("/api/v1/cases", json={"patientId": "P", "symptoms": [], "age": 200})
    assert r.status_code == 400


def test_update_case_rejects_blank_patient_id(client):
    case = create_case(client)

    r = client.put(f"/api/v1/cases/{case['id']}", json={"patientId": "   "})

    assert r.status_code == 400
    assert r.json()["error"] == "VALIDATION_ERROR"
    assert client.get(f"/api/v1/cases/{case['id']}").json()["patientId"] == "P-001"


def test_update_case_strips_patient_id(client):
    case = create_case(client)

    r = client.put(f"/api/v1/cases/{case['id']}", json={"patientId": "  P-002 "})

    assert r.status_code == 200
    assert r.json()["patientId"] == "P-002"


# ============================================================================
# Knowledge base
# ============================================================================

def test_get_disease_by_code(client):
    r = client.get("/api/v1/diseases/ORPHA:355")
    assert r.status_code == 200
    assert r.json()["name"] == "Gaucher disease"
    assert client.get("/api/v1/diseases/ORPHA:0").status_code == 404


def test_create_disease_and_reject_duplicate(client):
    payload = {"orphaCode": "ORPHA:424242", "name": "New entity", "phenotypes": []}

    assert client.post("/api/v1/diseases", json=payload).status_code == 201

    r = client.post("/api/v1/diseases", json=payload)
    assert r.status_code == 409
    assert r.json()["error"] == "DUPLICATE_DISEASE"
    assert r.json()["details"]["orphaCode"] == "ORPHA:424242"


def test_sync_is_insert_only(client):
    r = client.post("/api/v1/sync-orphadata")
    assert r.status_code == 200
    assert r.json()["synced"] == 0
    assert r.json()["message"] == "Synced 0 diseases from Orphadata"


# ============================================================================
# HPO
# ============================================================================

def test_hpo_search(client):
    r = client.get("/api/v1/hpo/search", params={"q": "hypo"})
    assert r.status_code == 200
    assert [t["label"] for t in r.json()] == ["Muscular hypotonia"]


@pytest.mark.parametrize("query", ["", "h"])
def test_hpo_search_short_query(client, query):
    assert client.get("/api/v1/hpo/search", params={"q": query}).json() == []


def test_hpo_term_lookup(client):
    r = client.get("/api/v1/hpo/HP:0001250")
    assert r.status_code == 200
    assert r.json()["label"] == "Seizures"
    assert client.get("/api/v1/hpo/HP:0000000").status_code == 404


# ============================================================================
# Referrals
# ============================================================================

def test_referral_html(client):
    case = create_case(client, diagnosis="Gaucher disease", orphaCode="ORPHA:355", score=7)

    r = client.post("/api/v1/referrals", json={"caseId": case["id"]})

    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/html")
    assert "referral-report.html" in r.headers["content-disposition"]
    assert "Gaucher disease" in r.text
    assert "E75.22" in r.text


def test_referral_content_uses_physician_profile(client):
    case = create_case(client, score=5)
    physician = client.post("/api/v1/physicians", json={"userId": "u-1", "fullName": "Dr. Ada Lovelace"}).json()

    r = client.post("/api/v1/referrals/content", json={"caseId": case["id"], "physicianId": physician["id"]})

    assert r.status_code == 200
    info = r.json()["referralInfo"]
    assert info["referringPhysician"] == "Dr. Ada Lovelace"
    assert info["urgencyLevel"] == "medium"
    assert r.json()["diagnosis"] is None


def test_referral_unknown_records(client):
    r = client.post("/api/v1/referrals", json={"caseId": 99})
    assert r.status_code == 404
    assert r.json()["error"] == "NOT_FOUND"

    case = create_case(client)
    r = client.post("/api/v1/referrals/content", json={"caseId": case["id"], "physicianId": 99})
    assert r.status_code == 404


# ============================================================================
# Practice cases
# ============================================================================

def test_practice_cases(client):
    assert len(client.get("/api/v1/test-cases").json()) == 10
    assert client.get("/api/v1/test-cases/case-001").json()["expectedDiagnosis"] == "Prader-Willi syndrome"
    assert client.get("/api/v1/test-cases/case-999").status_code == 404

    easy = client.get("/api/v1/test-cases/difficulty/easy").json()
    assert {c["difficulty"] for c in easy} == {"easy"}
    assert client.get("/api/v1/test-cases/difficulty/impossible").status_code == 400


def test_random_practice_case_is_not_an_id_lookup(client):
    r = client.get("/api/v1/test-cases/random")
    assert r.status_code == 200
    assert r.json()["id"].startswith("case-")


def test_practice_case_ranks_its_expected_diagnosis_first(client):
    case = client.get("/api/v1/test-cases/case-010").json()

    results = client.post("/api/v1/analyze", json={"symptoms": case["symptoms"]}).json()

    assert results[0]["disease"]["orphaCode"] == case["orphaCode"]


# ============================================================================
# Physicians
# ============================================================================

def test_physician_profile_routes(client):
    r = client.post("/api/v1/physicians", json={"userId": "u-7", "fullName": "Dr. Grace Hopper"})
    assert r.status_code == 201
    physician_id = r.json()["id"]

    assert client.get("/api/v1/physicians/by-user/u-7").json()["fullName"] == "Dr. Grace Hopper"
    assert client.get("/api/v1/physicians/by-user/u-404").status_code == 404

    r = client.put(f"/api/v1/physicians/{physician_id}", json={"specialty": "Clinical genetics"})
    assert r.status_code == 200
    assert r.json()["specialty"] == "Clinical genetics"
    assert client.put("/api/v1/physicians/404", json={"city": "Oslo"}).status_code == 404

    assert len(client.get("/api/v1/physicians").json()) == 1


def test_unknown_route_returns_structured_error(client):
    r = client.get("/api/v1/nowhere")
    assert r.status_code == 404
    assert r.json()["error"] == "HTTP_404"


def test_unhandled_error_keeps_tracing_headers(settings, repository):
    app = create_app(settings, repository=repository)

    @app.get("/api/v1/broken")
    async def broken():
        raise RuntimeError("boom")

    with TestClient(app, raise_server_exceptions=False) as client:
        r = client.get("/api/v1/broken")

    assert r.status_code == 500
    body = r.json()
    assert body["error"] == "INTERNAL_ERROR"
    assert "boom" not in body["message"]
    assert r.headers["X-Request-ID"] == body["request_id"]
    assert int(r.headers["X-Processing-Time-Ms"]) >= 0
