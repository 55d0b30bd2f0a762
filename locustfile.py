from locust import HttpUser, task, between
import random

class ApiUser(HttpUser):
    wait_time = between(0.1, 0.5)

    def on_start(self):
        # Register a user for this simulated client and keep its token
        uname = f"user_{random.randint(1, 1_000_000)}"
        r = self.client.post("/users", json={"first_name": uname, "last_name": "Load", "password": "loadtest"})
        self.headers = {}
        self.product_ids = []
        self.order_id = None
        if r.status_code == 200:
            body = r.json()
            self.user_id = body["user"]["id"]
            self.headers = {"Authorization": f"Bearer {body['token']}"}
            p = self.client.post("/products", json={"name": f"item_{uname}", "price": round(random.random() * 100, 2)}, headers=self.headers)
            if p.status_code == 200:
                self.product_ids.append(p.json()["id"])
            o = self.client.post("/orders", json={}, headers=self.headers)
            if o.status_code == 200:
                self.order_id = o.json()["id"]
        else:
            self.user_id = None

    @task(3)
    def add_to_order(self):
        if not self.order_id or not self.product_ids:
            return
        self.client.post(
            f"/orders/{self.order_id}/products",
            json={"product_id": random.choice(self.product_ids), "quantity": random.randint(1, 5)},
            headers=self.headers,
            name="/orders/[id]/products",
        )

    @task(2)
    def list_products(self):
        self.client.get("/products")

    @task(1)
    def top_products(self):
        self.client.get("/products/top")

    @task(1)
    def order_detail(self):
        if not self.order_id:
            return
        self.client.get(f"/orders/{self.order_id}", headers=self.headers, name="/orders/[id]")
