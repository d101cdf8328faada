# -*- coding: utf-8 -*-

from __future__ import annotations

import base64
import io
import shutil
import tempfile
import unittest
from pathlib import Path

import httpx
from fastapi.testclient import TestClient
from PIL import Image

from mealtracker.api import create_app
from mealtracker.meals.handles import HandleTable
from mealtracker.meals.storage import MealStore
from mealtracker.offline.cache import CacheStorage
from mealtracker.offline.worker import OfflineCache


def _image_b64(width: int = 1000, height: int = 500) -> str:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), (120, 60, 200)).save(buf, format="PNG")
    return base64.b64encode(buf.getvalue()).decode("ascii")


class TestMealsApi(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = Path(tempfile.mkdtemp(prefix="mealtracker-api-"))
        self.handles = HandleTable()
        app = create_app(store=MealStore(self._tmp / "meals.db"), handles=self.handles, enable_shell=False)
        self.client = TestClient(app)
        self.client.__enter__()

    def tearDown(self) -> None:
        self.client.__exit__(None, None, None)
        shutil.rmtree(self._tmp, ignore_errors=True)

    def _create(self, **body) -> dict:
        resp = self.client.post("/api/meals", json=body)
        self.assertEqual(resp.status_code, 200, resp.text)
        return resp.json()

    def test_create_and_list_by_date(self) -> None:
        meal = self._create(type="lunch", notes="salad", date="2024-03-01")
        self.assertEqual(meal["image_count"], 0)
        self.assertEqual(meal["notes"], "salad")

        resp = self.client.get("/api/meals", params={"date": "2024-03-01"})
        self.assertEqual(resp.status_code, 200)
        payload = resp.json()
        self.assertEqual(payload["count"], 1)
        self.assertEqual(payload["meals"][0]["id"], meal["id"])

        resp = self.client.get(f"/api/meals/{meal['id']}")
        self.assertEqual(resp.json()["type"], "lunch")

    def test_create_with_images_and_edit_notes_only(self) -> None:
        meal = self._create(notes="pasta", date="2024-03-02", images=[{"kind": "raw", "data_base64": _image_b64()}])
        self.assertEqual(meal["image_count"], 1)
        size = meal["images"][0]["size_bytes"]

        resp = self.client.patch(
            f"/api/meals/{meal['id']}",
            json={"notes": "pasta with pesto", "images": [{"kind": "stored", "index": 0}]},
        )
        self.assertEqual(resp.status_code, 200, resp.text)
        updated = resp.json()
        self.assertEqual(updated["notes"], "pasta with pesto")
        self.assertEqual(updated["timestamp"], meal["timestamp"])
        self.assertEqual(updated["images"][0]["size_bytes"], size)

        resp = self.client.patch(f"/api/meals/{meal['id']}", json={"images": [{"kind": "stored", "index": 3}]})
        self.assertEqual(resp.status_code, 400)

    def test_display_handles_round_trip(self) -> None:
        meal = self._create(date="2024-03-02", images=[{"kind": "raw", "data_base64": _image_b64(300, 300)}])
        resp = self.client.post(f"/api/meals/{meal['id']}/handles")
        self.assertEqual(resp.status_code, 200)
        handles = resp.json()["handles"]
        self.assertEqual(len(handles), 1)
        token = handles[0]["handle"]
        self.assertEqual(self.handles.live_count, 1)

        resp = self.client.get(f"/api/handles/{token}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.headers["content-type"], "image/jpeg")
        self.assertEqual(resp.content[:2], b"\xff\xd8")

        self.assertEqual(self.client.delete(f"/api/handles/{token}").json()["released"], 1)
        self.assertEqual(self.client.delete(f"/api/handles/{token}").json()["released"], 0)
        self.assertEqual(self.client.get(f"/api/handles/{token}").status_code, 404)
        self.assertEqual(self.handles.live_count, 0)

    def test_pending_handles_feed_a_new_meal(self) -> None:
        resp = self.client.post("/api/handles", json={"owner": "edit-1", "data_base64": _image_b64(200, 100)})
        self.assertEqual(resp.status_code, 200)
        token = resp.json()["handle"]
        self.assertEqual(resp.json()["origin"], "pending")
        self.assertEqual(self.client.get(f"/api/handles/{token}").headers["content-type"], "image/png")

        meal = self._create(date="2024-03-04", images=[{"kind": "handle", "handle": token}])
        self.assertEqual(meal["image_count"], 1)

        resp = self.client.delete("/api/handles", params={"owner": "edit-1"})
        self.assertEqual(resp.json()["released"], 1)
        resp = self.client.post("/api/meals", json={"images": [{"kind": "handle", "handle": token}]})
        self.assertEqual(resp.status_code, 400)

    def test_delete_is_idempotent_and_missing_update_is_404(self) -> None:
        meal = self._create(date="2024-03-01")
        self.assertTrue(self.client.delete(f"/api/meals/{meal['id']}").json()["deleted"])
        self.assertFalse(self.client.delete(f"/api/meals/{meal['id']}").json()["deleted"])
        self.assertEqual(self.client.get(f"/api/meals/{meal['id']}").status_code, 404)
        self.assertEqual(self.client.patch(f"/api/meals/{meal['id']}", json={"notes": "x"}).status_code, 404)

    def test_bad_inputs(self) -> None:
        resp = self.client.post("/api/meals", json={"images": [{"kind": "raw", "data_base64": "%%%not-base64"}]})
        self.assertEqual(resp.status_code, 400)

        junk = base64.b64encode(b"this is not an image").decode("ascii")
        resp = self.client.post("/api/meals", json={"images": [{"kind": "raw", "data_base64": junk}]})
        self.assertEqual(resp.status_code, 400)

        six = [{"kind": "raw", "data_base64": _image_b64(20, 20)} for _ in range(6)]
        resp = self.client.post("/api/meals", json={"images": six})
        self.assertEqual(resp.status_code, 400)

        resp = self.client.post("/api/meals", json={"date": "2024-13-01"})
        self.assertEqual(resp.status_code, 422)
        resp = self.client.post("/api/meals", json={"type": "brunch"})
        self.assertEqual(resp.status_code, 422)
        resp = self.client.get("/api/meals/range", params={"start": "2024-03-07", "end": "2024-03-01"})
        self.assertEqual(resp.status_code, 400)

    def test_week_dates_and_history(self) -> None:
        self._create(type="lunch", date="2024-03-03")
        self._create(type="dinner", date="2024-03-03")
        self._create(date="2024-03-06")
        self._create(date="2024-03-11")

        resp = self.client.get("/api/meals/dates", params={"start": "2024-03-01", "end": "2024-03-07"})
        self.assertEqual(resp.json()["dates"], ["2024-03-03", "2024-03-06"])

        week = self.client.get("/api/meals/week", params={"date": "2024-03-06"}).json()
        self.assertEqual(week["start"], "2024-03-04")
        self.assertEqual(week["end"], "2024-03-10")
        self.assertEqual(len(week["days"]), 7)
        self.assertEqual(week["dates_with_meals"], ["2024-03-06"])
        self.assertEqual(len(week["meals"]), 1)

        resp = self.client.get("/api/meals/range", params={"start": "2024-03-01", "end": "2024-03-10"})
        self.assertEqual(resp.json()["count"], 3)

        history = self.client.get("/api/meals/history").json()
        self.assertEqual(history["count"], 4)
        self.assertEqual([d["date"] for d in history["days"]], ["2024-03-11", "2024-03-06", "2024-03-03"])

        everything = self.client.get("/api/meals/all").json()
        stamps = [m["timestamp"] for m in everything["meals"]]
        self.assertEqual(stamps, sorted(stamps, reverse=True))

    def test_health(self) -> None:
        resp = self.client.get("/api/health")
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["store_open"])
        self.assertIsNone(resp.json()["shell_cache"])


class TestShellRoutes(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = Path(tempfile.mkdtemp(prefix="mealtracker-shell-"))
        self.online = True

        def origin(request: httpx.Request) -> httpx.Response:
            if not self.online:
                raise httpx.ConnectError("offline", request=request)
            return httpx.Response(200, content=f"shell:{request.url.path}".encode(), headers={"content-type": "text/html"})

        shell = OfflineCache(
            CacheStorage(self._tmp / "shell_cache.db"),
            version="test-v1",
            origin="http://shell.test",
            precache_urls=["./", "./index.html"],
            transport=httpx.MockTransport(origin),
        )
        app = create_app(store=MealStore(self._tmp / "meals.db"), shell_cache=shell)
        self.client = TestClient(app)
        self.client.__enter__()

    def tearDown(self) -> None:
        self.client.__exit__(None, None, None)
        shutil.rmtree(self._tmp, ignore_errors=True)

    def test_shell_served_online_then_offline(self) -> None:
        self.assertEqual(self.client.get("/api/health").json()["shell_cache"], "active")

        resp = self.client.get("/week", headers={"sec-fetch-mode": "navigate"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.text, "shell:/week")
        self.assertEqual(resp.headers["x-shell-cache"], "miss")

        self.online = False
        resp = self.client.get("/history", headers={"sec-fetch-mode": "navigate"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.text, "shell:/index.html")
        self.assertEqual(resp.headers["x-shell-cache"], "hit")

        resp = self.client.get("/assets/app.js")
        self.assertEqual(resp.status_code, 503)
        self.assertEqual(resp.text, "Offline")

    def test_api_paths_are_not_proxied(self) -> None:
        resp = self.client.get("/api/nope")
        self.assertEqual(resp.status_code, 404)


if __name__ == "__main__":
    unittest.main()
