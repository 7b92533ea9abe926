import pytest
from fastapi.testclient import TestClient

from signage.server.app import create_app
from signage.store.ads import list_ad_images
from signage.store.identity_store import JsonFileIdentityStore


@pytest.fixture
def ads_root(tmp_path):
    root = tmp_path / "ads"
    for folder, names in {
        "teen": ["b.png", "a.jpg", "notes.txt"],
        "adults/male": ["m1.jpg"],
        "adults/female": ["f1.jpg", "f2.webp"],
        "adults": ["shared.png"],
    }.items():
        directory = root / folder
        directory.mkdir(parents=True, exist_ok=True)
        for name in names:
            (directory / name).write_bytes(b"x")
    return root


@pytest.fixture
def client(tmp_path, ads_root):
    store = JsonFileIdentityStore(tmp_path / "users.json")
    return TestClient(create_app(store, ads_root=ads_root))


def test_register_then_save_then_list(client):
    assert client.get("/users.json").json() == []

    response = client.post("/register_new")
    assert response.status_code == 200
    assert response.json() == {"id": "user1"}

    response = client.post("/save", json={"id": "user1", "descriptor": [0.25, 0.5]})
    assert response.status_code == 200
    assert response.json() == {"ok": True, "usersCount": 1}

    assert client.get("/users.json").json() == [{"id": "user1", "descriptors": [[0.25, 0.5]]}]


def test_save_rejects_incomplete_payload(client):
    response = client.post("/save", json={"descriptor": [0.1]})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid payload"}

    response = client.post("/save", json={"id": "user1", "descriptor": []})
    assert response.status_code == 400
    assert client.get("/users.json").json() == []


def test_users_read_failure_is_500(tmp_path):
    path = tmp_path / "users.json"
    store = JsonFileIdentityStore(path)
    path.write_text("[oops", encoding="utf-8")
    client = TestClient(create_app(store))

    response = client.get("/users.json")
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to read users"}


def test_ads_listing_by_category_and_gender(client):
    assert client.get("/ads/teen").json() == {"images": ["/asset/ads/teen/a.jpg", "/asset/ads/teen/b.png"]}
    assert client.get("/ads/adults", params={"gender": "Female"}).json() == {
        "images": ["/asset/ads/adults/female/f1.jpg", "/asset/ads/adults/female/f2.webp"]
    }
    assert client.get("/ads/adults").json() == {"images": ["/asset/ads/adults/shared.png"]}
    assert client.get("/ads/unknown").json() == {"images": []}


def test_ads_are_served_statically(client):
    response = client.get("/asset/ads/adults/male/m1.jpg")
    assert response.status_code == 200
    assert response.content == b"x"


def test_gendered_listing_ignores_unknown_gender(ads_root):
    assert list_ad_images(ads_root, "adults", "../teen") == []
    # gender is only meaningful for the adults folder
    assert list_ad_images(ads_root, "teen", "male") == ["/asset/ads/teen/a.jpg", "/asset/ads/teen/b.png"]
