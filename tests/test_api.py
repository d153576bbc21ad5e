import os
import sys
import unittest
import uuid

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from fastapi.testclient import TestClient

os.environ["USE_DB"] = "0"

import app.main as main


class ApiTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(main.app)
        self.site_id = f"site_{uuid.uuid4().hex[:8]}"

    def _create_type(self, name="Projects", fields=None) -> dict:
        res = self.client.post(
            f"/sites/{self.site_id}/content_types",
            json={
                "content_type": {"name": name},
                "fields_attributes": fields
                or {
                    "0": {"label": "Name", "type": "string", "required": True},
                    "1": {"label": "Active at", "type": "date"},
                },
            },
        )
        body = res.json()
        self.assertEqual(res.status_code, 201, body)
        return body["content_type"]


class TestContentTypesApi(ApiTestCase):
    def test_health(self) -> None:
        self.assertEqual(self.client.get("/health").json(), {"ok": True})

    def test_create_list_get(self) -> None:
        content_type = self._create_type()
        listed = self.client.get(f"/sites/{self.site_id}/content_types").json()
        self.assertEqual([ct["id"] for ct in listed["content_types"]], [content_type["id"]])
        res = self.client.get(f"/content_types/{content_type['id']}")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["content_type"]["slug"], "projects")

    def test_create_invalid(self) -> None:
        res = self.client.post(f"/sites/{self.site_id}/content_types", json={"content_type": {"name": "Empty"}})
        body = res.json()
        self.assertEqual(res.status_code, 400)
        self.assertFalse(body["ok"])
        self.assertEqual(body["errors"][0]["code"], "NO_FIELDS")

    def test_get_missing(self) -> None:
        res = self.client.get("/content_types/missing")
        self.assertEqual(res.status_code, 404)
        self.assertEqual(res.json()["errors"][0]["code"], "CONTENT_TYPE_NOT_FOUND")

    def test_update_conflict(self) -> None:
        content_type = self._create_type()
        url = f"/content_types/{content_type['id']}"
        ok = self.client.put(
            url,
            json={"fields_attributes": {"0": {"label": "Title", "type": "string"}}, "expected_hash": content_type["fields_hash"]},
        )
        self.assertEqual(ok.status_code, 200, ok.json())
        self.assertEqual(len(ok.json()["content_type"]["fields"]), 3)
        conflict = self.client.put(
            url,
            json={"fields_attributes": {"0": {"label": "Summary", "type": "text"}}, "expected_hash": content_type["fields_hash"]},
        )
        self.assertEqual(conflict.status_code, 409)
        self.assertEqual(conflict.json()["errors"][0]["code"], "SCHEMA_CONFLICT")

    def test_update_field_order_and_invalid_order_by(self) -> None:
        content_type = self._create_type()
        url = f"/content_types/{content_type['id']}"
        ids = [f["id"] for f in content_type["fields"]]
        res = self.client.put(url, json={"field_order": [ids[1]]})
        self.assertEqual(res.status_code, 200, res.json())
        self.assertEqual([f["name"] for f in res.json()["content_type"]["fields"]], ["active_at", "name"])

        res = self.client.put(url, json={"content_type": {"order_by": "nope"}})
        body = res.json()
        self.assertEqual(res.status_code, 400)
        self.assertEqual(body["errors"][0]["code"], "INVALID_ORDER_BY")
        self.assertIn("order_by", body["messages"])

    def test_cors_for_local_origin(self) -> None:
        res = self.client.get("/health", headers={"Origin": "http://localhost:5173"})
        self.assertEqual(res.headers.get("access-control-allow-origin"), "http://localhost:5173")

    def test_delete_requires_force_with_entries(self) -> None:
        content_type = self._create_type()
        self.client.post(f"/content_types/{content_type['id']}/entries", json={"entry": {"name": "A"}})
        res = self.client.delete(f"/content_types/{content_type['id']}")
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["errors"][0]["code"], "CONTENT_TYPE_HAS_ENTRIES")
        res = self.client.delete(f"/content_types/{content_type['id']}?force=true")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(self.client.get(f"/content_types/{content_type['id']}").status_code, 404)


class TestEntriesApi(ApiTestCase):
    def test_entry_lifecycle(self) -> None:
        content_type = self._create_type()
        base = f"/content_types/{content_type['id']}/entries"
        res = self.client.post(base, json={"entry": {"name": "Locomotive", "active_at": "2001-01-01"}})
        self.assertEqual(res.status_code, 201, res.json())
        entry = res.json()["entry"]
        self.assertEqual(entry["label"], "Locomotive")
        self.assertEqual(entry["attributes"], {"name": "Locomotive", "active_at": "2001-01-01"})

        attr = self.client.get(f"{base}/{entry['id']}/attributes/name").json()
        self.assertEqual(attr["value"], "Locomotive")
        self.assertEqual(self.client.get(f"{base}/{entry['id']}/attributes/title").status_code, 404)

        res = self.client.put(f"{base}/{entry['id']}", json={"entry": {"name": "Steam"}})
        self.assertEqual(res.json()["entry"]["attributes"]["name"], "Steam")
        self.assertEqual(self.client.get(f"{base}/{entry['id']}").json()["entry"]["label"], "Steam")

        self.assertEqual(self.client.delete(f"{base}/{entry['id']}").status_code, 200)
        self.assertEqual(self.client.get(f"{base}/{entry['id']}").status_code, 404)

    def test_purge_orphan_values(self) -> None:
        content_type = self._create_type()
        base = f"/content_types/{content_type['id']}"
        self.client.post(f"{base}/entries", json={"name": "A", "active_at": "2001-01-01"})
        at_id = content_type["fields"][1]["id"]
        res = self.client.put(base, json={"fields_attributes": {"0": {"id": at_id, "destroy": True}}})
        self.assertEqual(res.status_code, 200, res.json())
        purged = self.client.post(f"{base}/purge_orphan_values").json()
        self.assertEqual(purged["entries_updated"], 1)
        self.assertEqual(self.client.post(f"{base}/purge_orphan_values").json()["entries_updated"], 0)
        self.assertEqual(self.client.post("/content_types/missing/purge_orphan_values").status_code, 404)

    def test_entry_validation_errors(self) -> None:
        content_type = self._create_type()
        res = self.client.post(f"/content_types/{content_type['id']}/entries", json={"active_at": "soon"})
        self.assertEqual(res.status_code, 400)
        self.assertEqual(sorted(e["code"] for e in res.json()["errors"]), ["REQUIRED_FIELD", "TYPE_MISMATCH"])

    def test_ordered_sorted_and_grouped(self) -> None:
        categories = self._create_type("Categories", {"0": {"label": "Name", "type": "string"}})
        people = self._create_type(
            "People",
            {
                "0": {"label": "Name", "type": "string"},
                "1": {"label": "Category", "type": "belongs_to", "class_name": "categories"},
            },
        )
        cat_base = f"/content_types/{categories['id']}/entries"
        dev = self.client.post(cat_base, json={"name": "Developer"}).json()["entry"]
        people_base = f"/content_types/{people['id']}/entries"
        a = self.client.post(people_base, json={"name": "A", "category": dev["id"]}).json()["entry"]
        b = self.client.post(people_base, json={"name": "B"}).json()["entry"]

        listed = self.client.get(people_base).json()
        self.assertEqual([e["id"] for e in listed["entries"]], [a["id"], b["id"]])

        sorted_res = self.client.post(f"{people_base}/sort", json={"entry_ids": [b["id"]]}).json()
        self.assertEqual(sorted_res["entry_ids"], [b["id"], a["id"]])

        category_field = people["fields"][1]["id"]
        grouped = self.client.get(f"{people_base}/grouped", params={"field_id": category_field}).json()
        self.assertTrue(grouped["ok"], grouped)
        self.assertEqual([g["name"] for g in grouped["groups"]], ["Developer", None])
        self.assertEqual(grouped["groups"][0]["key"]["id"], dev["id"])
        self.assertEqual([e["id"] for e in grouped["groups"][1]["entries"]], [b["id"]])


if __name__ == "__main__":
    unittest.main()
