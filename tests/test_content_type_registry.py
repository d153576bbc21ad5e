import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from app.stores import MemoryDocumentStore
from content_type_registry import CONTENT_TYPES, ENTRIES, ContentTypeRegistry
from contype.schema_hash import fields_hash


PROJECT_FIELDS = {
    "0": {"label": "Name", "type": "string", "required": True},
    "1": {"label": "Description", "type": "text"},
    "2": {"label": "Active at", "type": "date"},
}


class TestContentTypeRegistry(unittest.TestCase):
    def setUp(self) -> None:
        self.store = MemoryDocumentStore()
        self.registry = ContentTypeRegistry(self.store)

    def _create(self, name="Projects", fields=None, site_id="site1") -> dict:
        result = self.registry.create(site_id, {"name": name}, fields or PROJECT_FIELDS)
        self.assertTrue(result["ok"], result["errors"])
        return result["content_type"]

    def test_create_persists_normalized_document(self) -> None:
        content_type = self._create()
        self.assertTrue(content_type["id"])
        self.assertEqual(content_type["slug"], "projects")
        self.assertEqual([f["name"] for f in content_type["fields"]], ["name", "description", "active_at"])
        self.assertEqual(content_type["fields_hash"], fields_hash(content_type["fields"]))
        self.assertTrue(content_type["created_at"].endswith("Z"))
        stored = self.registry.get(content_type["id"])
        self.assertEqual(stored, content_type)
        self.assertEqual(self.registry.get_by_slug("site1", "projects")["id"], content_type["id"])

    def test_create_without_fields_writes_nothing(self) -> None:
        result = self.registry.create("site1", {"name": "Empty"})
        self.assertFalse(result["ok"])
        self.assertEqual([e["code"] for e in result["errors"]], ["NO_FIELDS"])
        self.assertEqual(self.store.count(CONTENT_TYPES), 0)

    def test_invalid_field_invalidates_create(self) -> None:
        result = self.registry.create("site1", {"name": "Projects"}, {"0": {"label": "Name", "type": "string"}, "1": {}})
        self.assertFalse(result["ok"])
        self.assertEqual({e["path"] for e in result["errors"]}, {"fields[1].label", "fields[1].type"})
        self.assertEqual(self.store.count(CONTENT_TYPES), 0)

    def test_duplicate_slug_within_site(self) -> None:
        self._create()
        result = self.registry.create("site1", {"name": "Projects"}, PROJECT_FIELDS)
        self.assertEqual([e["code"] for e in result["errors"]], ["DUPLICATE_SLUG"])
        other_site = self.registry.create("site2", {"name": "Projects"}, PROJECT_FIELDS)
        self.assertTrue(other_site["ok"])

    def test_list_is_scoped_to_site(self) -> None:
        self._create("Projects")
        self._create("Clients")
        self._create("Projects", site_id="site2")
        self.assertEqual([ct["slug"] for ct in self.registry.list("site1")], ["projects", "clients"])

    def test_update_applies_patches_as_unit(self) -> None:
        content_type = self._create()
        ids = [f["id"] for f in content_type["fields"]]
        result = self.registry.update(
            content_type["id"],
            {"description": "All projects"},
            {
                "0": {"id": ids[1], "destroy": "1"},
                "1": {"id": ids[2], "label": "Published at"},
                "2": {"label": "Title", "type": "string"},
            },
        )
        self.assertTrue(result["ok"], result["errors"])
        updated = result["content_type"]
        self.assertEqual(updated["description"], "All projects")
        self.assertEqual([f["label"] for f in updated["fields"]], ["Name", "Published at", "Title"])
        self.assertEqual(updated["fields"][1]["name"], "active_at")
        self.assertEqual(updated["created_at"], content_type["created_at"])
        self.assertNotEqual(updated["fields_hash"], content_type["fields_hash"])

    def test_failed_update_keeps_stored_document(self) -> None:
        content_type = self._create()
        ids = [f["id"] for f in content_type["fields"]]
        result = self.registry.update(
            content_type["id"],
            None,
            {"0": {"id": ids[0], "destroy": True}, "1": {"id": ids[1], "label": "Active at"}},
        )
        self.assertFalse(result["ok"])
        self.assertEqual(result["errors"][0]["code"], "DUPLICATE_LABEL")
        self.assertEqual(self.registry.get(content_type["id"]), content_type)

    def test_removing_every_field_is_rejected(self) -> None:
        content_type = self._create()
        patches = {str(i): {"id": f["id"], "destroy": True} for i, f in enumerate(content_type["fields"])}
        result = self.registry.update(content_type["id"], None, patches)
        self.assertEqual([e["code"] for e in result["errors"]], ["NO_FIELDS"])

    def test_expected_hash_conflict(self) -> None:
        content_type = self._create()
        first = self.registry.update(
            content_type["id"],
            None,
            {"0": {"label": "Title", "type": "string"}},
            expected_hash=content_type["fields_hash"],
        )
        self.assertTrue(first["ok"])
        stale = self.registry.update(
            content_type["id"],
            None,
            {"0": {"label": "Summary", "type": "text"}},
            expected_hash=content_type["fields_hash"],
        )
        self.assertFalse(stale["ok"])
        self.assertEqual(stale["errors"][0]["code"], "SCHEMA_CONFLICT")
        self.assertEqual(stale["errors"][0]["detail"]["fields_hash"], first["content_type"]["fields_hash"])

    def test_update_missing_content_type(self) -> None:
        result = self.registry.update("nope", {"name": "X"})
        self.assertEqual(result["errors"][0]["code"], "CONTENT_TYPE_NOT_FOUND")

    def test_belongs_to_resolves_by_slug_or_id(self) -> None:
        categories = self._create("Categories", {"0": {"label": "Name", "type": "string"}})
        by_slug = self.registry.create(
            "site1",
            {"name": "Posts"},
            {"0": {"label": "Title", "type": "string"}, "1": {"label": "Category", "type": "belongs_to", "class_name": "categories"}},
        )
        self.assertTrue(by_slug["ok"], by_slug["errors"])
        by_id = self.registry.create(
            "site1",
            {"name": "Pages"},
            {"0": {"label": "Title", "type": "string"}, "1": {"label": "Category", "type": "belongs_to", "class_name": categories["id"]}},
        )
        self.assertTrue(by_id["ok"], by_id["errors"])
        self.assertEqual(self.registry.resolve_class_name("site1", "categories")["id"], categories["id"])
        self.assertIsNone(self.registry.resolve_class_name("site2", categories["id"]))

    def test_unknown_class_name(self) -> None:
        result = self.registry.create(
            "site1",
            {"name": "Posts"},
            {"0": {"label": "Title", "type": "string"}, "1": {"label": "Author", "type": "belongs_to", "class_name": "authors"}},
        )
        self.assertEqual([(e["code"], e["path"]) for e in result["errors"]], [("UNKNOWN_CLASS_NAME", "fields[1].class_name")])

    def test_self_reference_is_allowed(self) -> None:
        result = self.registry.create(
            "site1",
            {"name": "Pages"},
            {"0": {"label": "Title", "type": "string"}, "1": {"label": "Parent", "type": "belongs_to", "class_name": "pages"}},
        )
        self.assertTrue(result["ok"], result["errors"])

    def test_delete_refused_while_referenced(self) -> None:
        categories = self._create("Categories", {"0": {"label": "Name", "type": "string"}})
        posts = self._create(
            "Posts",
            {"0": {"label": "Title", "type": "string"}, "1": {"label": "Category", "type": "belongs_to", "class_name": "categories"}},
        )
        result = self.registry.delete(categories["id"])
        self.assertEqual(result["errors"][0]["code"], "CONTENT_TYPE_IN_USE")
        self.assertEqual(result["errors"][0]["detail"]["content_type_ids"], [posts["id"]])
        self.assertTrue(self.registry.delete(posts["id"])["ok"])
        self.assertTrue(self.registry.delete(categories["id"])["ok"])
        self.assertIsNone(self.registry.get(categories["id"]))

    def test_delete_with_entries_requires_force(self) -> None:
        content_type = self._create()
        self.store.create(ENTRIES, {"content_type_id": content_type["id"], "values": {}})
        result = self.registry.delete(content_type["id"])
        self.assertEqual(result["errors"][0]["code"], "CONTENT_TYPE_HAS_ENTRIES")
        self.assertTrue(self.registry.delete(content_type["id"], force=True)["ok"])
        self.assertEqual(self.store.count(ENTRIES), 0)

    def test_order_by_must_resolve_when_set(self) -> None:
        content_type = self._create()
        result = self.registry.update(content_type["id"], {"order_by": "no-such-field"})
        self.assertFalse(result["ok"])
        self.assertEqual([e["code"] for e in result["errors"]], ["INVALID_ORDER_BY"])
        self.assertEqual(result["messages"], {"order_by": [result["errors"][0]["message"]]})
        self.assertEqual(self.registry.get(content_type["id"])["order_by"], "created_at")

        created = self.registry.create("site1", {"name": "Clients", "order_by": "typo"}, PROJECT_FIELDS)
        self.assertEqual([e["code"] for e in created["errors"]], ["INVALID_ORDER_BY"])

        for order_by in ("manual", "updated_at", content_type["fields"][2]["id"]):
            self.assertTrue(self.registry.update(content_type["id"], {"order_by": order_by})["ok"], order_by)

    def test_destroyed_order_field_stays_stale_until_changed(self) -> None:
        content_type = self._create()
        at_id = content_type["fields"][2]["id"]
        self.assertTrue(self.registry.update(content_type["id"], {"order_by": at_id})["ok"])
        result = self.registry.update(content_type["id"], {"description": "x"}, {"0": {"id": at_id, "destroy": True}})
        self.assertTrue(result["ok"], result["errors"])
        self.assertEqual(result["content_type"]["order_by"], at_id)
        self.assertTrue(self.registry.update(content_type["id"], {"description": "y"})["ok"])
        self.assertTrue(self.registry.update(content_type["id"], {"order_by": "created_at"})["ok"])

    def test_update_reorders_fields(self) -> None:
        content_type = self._create()
        ids = [f["id"] for f in content_type["fields"]]
        result = self.registry.update(content_type["id"], None, field_order=[ids[2], ids[0]])
        self.assertTrue(result["ok"], result["errors"])
        fields = self.registry.get(content_type["id"])["fields"]
        self.assertEqual([f["name"] for f in fields], ["active_at", "name", "description"])
        self.assertEqual([f["position"] for f in fields], [0, 1, 2])
        self.assertNotEqual(result["content_type"]["fields_hash"], content_type["fields_hash"])

    def test_failed_result_maps_messages_by_path(self) -> None:
        result = self.registry.create("site1", {}, {"0": {"label": "Name", "type": "string"}, "1": {"type": "string"}})
        self.assertEqual(result["messages"]["name"], ["can't be blank"])
        self.assertEqual(result["messages"]["fields[1].label"], ["can't be blank"])

    def test_validate_does_not_write(self) -> None:
        result = self.registry.validate({"site_id": "site1", "name": "Drafts", "fields": [{"label": "Title", "type": "string"}]})
        self.assertTrue(result["ok"])
        self.assertEqual(result["content_type"]["slug"], "drafts")
        self.assertEqual(self.store.count(CONTENT_TYPES), 0)


if __name__ == "__main__":
    unittest.main()
