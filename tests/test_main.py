import unittest

from moongazer.main import app


class TestMain(unittest.TestCase):
    def test_app_metadata(self):
        self.assertEqual(app.title, "Moongazer")
        paths = {route.path for route in app.routes}
        self.assertIn("/api/best-windows", paths)
        self.assertIn("/api/health", paths)


if __name__ == "__main__":
    unittest.main()
