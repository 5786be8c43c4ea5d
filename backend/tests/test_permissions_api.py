"""
API tests -- catalog endpoints and effective permission decisions.
"""


class TestCatalogEndpoints:

    async def test_catalog_requires_auth(self, client):
        r = await client.get("/api/permissions/catalog")
        assert r.status_code == 401

    async def test_catalog(self, client, plain_headers):
        r = await client.get("/api/permissions/catalog", headers=plain_headers)
        assert r.status_code == 200
        keys = [m["key"] for m in r.json()["modules"]]
        assert keys == [
            "dashboard", "customers", "hospitals", "collaborators",
            "invoices", "users", "settings", "configurator",
        ]

    async def test_departments(self, client, plain_headers):
        r = await client.get("/api/permissions/departments", headers=plain_headers)
        ids = [d["id"] for d in r.json()["items"]]
        assert "sales" in ids
        assert len(ids) == 7


class TestEffectivePermissions:

    async def test_me_for_sales_user(self, client, sales_headers):
        r = await client.get("/api/permissions/me", headers=sales_headers)
        assert r.status_code == 200
        data = r.json()
        assert data["is_admin"] is False
        assert data["role"] == "sales-rep"
        assert data["visible_modules"] == ["dashboard", "customers"]
        assert data["role_data"]["name"] == "sales-rep"
        fields = data["modules"]["customers"]["fields"]
        assert fields["first_name"] == "editable"
        assert fields["email"] == "readonly"
        assert fields["national_id"] == "hidden"
        # no override: readonly, not the catalog default
        assert fields["notes"] == "readonly"

    async def test_shared_field_key_across_modules(self, client, sales_headers):
        r = await client.get("/api/permissions/me", headers=sales_headers)
        modules = r.json()["modules"]
        assert modules["collaborators"]["fields"]["national_id"] == "hidden"
        assert modules["collaborators"]["fields"]["email"] == "readonly"

    async def test_me_for_admin(self, client, admin_headers):
        r = await client.get("/api/permissions/me", headers=admin_headers)
        data = r.json()
        assert data["is_admin"] is True
        assert data["role"] is None
        assert data["role_data"] is None
        assert len(data["visible_modules"]) == 8
        assert set(data["modules"]["invoices"]["fields"].values()) == {"editable"}

    async def test_check_field(self, client, sales_headers):
        r = await client.get(
            "/api/permissions/check",
            headers=sales_headers,
            params={"module_key": "customers", "field_key": "email"},
        )
        assert r.status_code == 200
        assert r.json() == {
            "module_key": "customers",
            "known_module": True,
            "can_access_module": True,
            "field_key": "email",
            "field_access": "readonly",
            "is_hidden": False,
            "is_readonly": True,
        }

    async def test_check_unknown_module(self, client, admin_headers, sales_headers):
        r = await client.get("/api/permissions/check", headers=sales_headers,
                             params={"module_key": "chat"})
        assert r.status_code == 200
        assert r.json()["known_module"] is False
        assert r.json()["can_access_module"] is False

        r = await client.get("/api/permissions/check", headers=admin_headers,
                             params={"module_key": "chat", "field_key": "anything"})
        assert r.json()["can_access_module"] is True
        assert r.json()["field_access"] == "editable"

    async def test_check_requires_module_key(self, client, admin_headers):
        r = await client.get("/api/permissions/check", headers=admin_headers)
        assert r.status_code == 422
