from locust import HttpUser, task, between
import os
import random
import string
from requests.auth import HTTPBasicAuth


def random_username() -> str:
    return "user_" + "".join(random.choice(string.ascii_lowercase) for _ in range(6))


def get_auth():
    username = os.getenv("LOADTEST_USER") or random_username()
    password = os.getenv("LOADTEST_PASS", "loadtest")
    # unknown users are created on first request
    return HTTPBasicAuth(username, password)


class DetectionServiceUser(HttpUser):
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.auth = get_auth()
        self.sample_image_path = os.getenv("LOADTEST_IMAGE", "sample.jpeg")

    @task(2)
    def health(self):
        self.client.get("/health")

    @task(6)
    def upload_and_list(self):
        if not os.path.exists(self.sample_image_path):
            return
        with open(self.sample_image_path, "rb") as f:
            files = {"image": (os.path.basename(self.sample_image_path), f, "image/jpeg")}
            with self.client.post("/api/v1/detection/", files=files, auth=self.auth, catch_response=True) as resp:
                if resp.status_code != 200:
                    resp.failure(f"detection failed: {resp.status_code}")
                    return
                if "prediction" not in resp.json().get("data", {}):
                    resp.failure("missing prediction in response")
                    return
        self.client.get("/api/v1/detection/get-detections", auth=self.auth)

    @task(2)
    def save_manual_prediction(self):
        payload = {
            "prediction": {"label": random.choice(["benign", "malignant"])},
            "probability": round(random.random(), 4),
        }
        with self.client.post(
            "/api/v1/detection/save-prediction", json=payload, auth=self.auth, catch_response=True
        ) as resp:
            if resp.status_code != 201:
                resp.failure(f"save-prediction failed: {resp.status_code}")
