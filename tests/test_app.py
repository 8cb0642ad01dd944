import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

import core
from app import app
from lib.cache_manager import reset_session_cache
from spotify_fakes import FakeClientFactory, FakeSpotify, episode_item, spotify_error

REDIRECT_URL = "http://localhost:8000/#access_token=ABC123&token_type=Bearer&expires_in=3600"


class AppTests(unittest.TestCase):
    def setUp(self):
        reset_session_cache()
        self.spotify = FakeSpotify([
            episode_item("a", "Meditation: Coming Home", 10 * 60000),
            episode_item("b", "Talk: Freedom", 10 * 60000),
        ])
        self.factory = FakeClientFactory(self.spotify)
        patcher = patch("app.get_spotify_client", self.factory)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.client = TestClient(app)
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)

    def _login(self):
        res = self.client.post("/api/session", json={"url": REDIRECT_URL})
        self.assertEqual(res.status_code, 200)
        return res

    def test_health(self):
        res = self.client.get("/health")
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.json()["ok"])

    def test_anonymous_page_offers_login(self):
        res = self.client.get("/")
        self.assertEqual(res.status_code, 200)
        self.assertIn("Login to Spotify", res.text)
        self.assertNotIn("<iframe", res.text)

    def test_login_redirects_to_spotify(self):
        with patch.dict("os.environ", {"SPOTIFY_CLIENT_ID": "client-123"}), \
                patch.object(core, "LOCAL_REDIRECT_URI", "http://localhost:8000/"):
            res = self.client.get("/login", follow_redirects=False)
        self.assertEqual(res.status_code, 307)
        location = res.headers["location"]
        self.assertTrue(location.startswith("https://accounts.spotify.com/authorize?"))
        self.assertIn("client_id=client-123", location)
        self.assertIn("response_type=token", location)
        self.assertIn("redirect_uri=http%3A%2F%2Flocalhost%3A8000%2F", location)

    def test_login_without_client_id(self):
        with patch.dict("os.environ", {"SPOTIFY_CLIENT_ID": ""}):
            res = self.client.get("/login", follow_redirects=False)
        self.assertEqual(res.status_code, 500)

    def test_session_from_redirect_fragment(self):
        res = self._login()
        self.assertEqual(res.json(), {"authenticated": True, "location": "http://localhost:8000/"})
        self.assertIn("session_id", res.cookies)
        self.assertEqual(self.factory.tokens, ["ABC123"])

        status = self.client.get("/api/session")
        self.assertTrue(status.json()["authenticated"])

    def test_session_without_fragment_is_noop(self):
        res = self.client.post("/api/session", json={"url": "http://localhost:8000/"})
        self.assertEqual(res.json(), {"authenticated": False, "location": "http://localhost:8000/"})
        self.assertEqual(self.factory.tokens, [])

    def test_meditation_requires_session(self):
        res = self.client.post("/api/meditation", json={"minutes": 10})
        self.assertEqual(res.status_code, 401)

    def test_meditation_search(self):
        self._login()
        res = self.client.post("/api/meditation", json={"minutes": 10})
        self.assertEqual(res.status_code, 200)
        data = res.json()
        self.assertIsNone(data["error"])
        self.assertFalse(data["is_loading"])
        self.assertEqual(data["current_episode"]["id"], "a")
        self.assertEqual(data["current_episode"]["embed_url"], "https://open.spotify.com/embed/episode/a")

        page = self.client.get("/", params={"minutes": 10})
        self.assertIn("https://open.spotify.com/embed/episode/a", page.text)
        self.assertIn("Find Another Meditation", page.text)

    def test_meditation_minutes_validated(self):
        self._login()
        self.assertEqual(self.client.post("/api/meditation", json={"minutes": 31}).status_code, 422)
        self.assertEqual(self.client.post("/api/meditation", json={"minutes": 4}).status_code, 422)

    def test_expired_token_during_search(self):
        self._login()
        self.spotify.search_error = spotify_error(401)
        data = self.client.post("/api/meditation", json={"minutes": 10}).json()
        self.assertFalse(data["authenticated"])
        self.assertTrue(data["error"].startswith("Error finding meditation:"))

        page = self.client.get("/")
        self.assertIn("Login to Spotify", page.text)

    def test_form_search_redirects_back(self):
        self._login()
        res = self.client.post("/meditation", data={"minutes": "10"}, follow_redirects=False)
        self.assertEqual(res.status_code, 303)
        self.assertEqual(res.headers["location"], "/?minutes=10")

    def test_logout(self):
        self._login()
        res = self.client.delete("/api/session")
        self.assertFalse(res.json()["authenticated"])
        self.assertEqual(self.client.post("/api/meditation", json={"minutes": 10}).status_code, 401)

    def test_oversized_body_rejected(self):
        res = self.client.post("/api/session", content=b"x" * (128 * 1024), headers={"content-type": "application/json"})
        self.assertEqual(res.status_code, 413)


if __name__ == "__main__":
    unittest.main()
