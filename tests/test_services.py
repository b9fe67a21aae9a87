"""
Service-level tests: owner scoping, cached listing and write-path
invalidation for projects, models and annotations.
"""
import math

import pytest

from core.cache import annotation_list_key, model_list_key, project_list_key
from services.georeferencing import EARTH_RADIUS
from services.model_store import ModelValidationError
from services.pagination import normalize_page, pagination_info


class TestPagination:

    @pytest.mark.parametrize("page, limit, expected", [
        (None, None, (1, 50)),
        ("2", "10", (2, 10)),
        ("0", "0", (1, 50)),
        ("-3", "-5", (1, 1)),
        ("abc", "500", (1, 100)),
        (3, 100, (3, 100)),
        ("100000000000000000000", "10", (100_000, 10)),
    ])
    def test_normalize_page(self, page, limit, expected):
        assert normalize_page(page, limit) == expected

    def test_pagination_info(self):
        assert pagination_info(2, 10, 25) == {
            "page": 2, "limit": 10, "total": 25,
            "totalPages": 3, "hasNext": True, "hasPrev": True,
        }
        assert pagination_info(1, 50, 0)["totalPages"] == 0


class TestProjectService:

    async def test_create_and_list(self, project_service):
        await project_service.create("user-1", "Bridge", "Deck survey")
        await project_service.create("user-2", "Other")

        result = await project_service.list_for_user("user-1")

        assert [p["name"] for p in result["projects"]] == ["Bridge"]
        assert result["pagination"]["total"] == 1

    async def test_list_is_served_from_cache(self, project_service, cache):
        await project_service.create("user-1", "Bridge")
        first = await project_service.list_for_user("user-1", page=1, limit=50)

        cached = cache.get(project_list_key("user-1", 1, 50))
        assert cached is first

    async def test_create_invalidates_list(self, project_service):
        await project_service.list_for_user("user-1")
        await project_service.create("user-1", "Later")

        result = await project_service.list_for_user("user-1")
        assert result["pagination"]["total"] == 1

    async def test_update_ignores_null_name_and_invalidates_models(self, project_service, cache):
        project = await project_service.create("user-1", "Bridge")
        cache.set(model_list_key("user-1", 1, 50), {"models": []}, ttl=120)

        updated = await project_service.update(
            project["id"], "user-1", {"name": None, "status": "archived", "description": "x"}
        )

        assert updated["name"] == "Bridge"
        assert updated["status"] == "archived"
        assert updated["description"] == "x"
        assert cache.get(model_list_key("user-1", 1, 50)) is None

    async def test_other_user_cannot_touch_project(self, project_service):
        project = await project_service.create("user-1", "Bridge")

        assert await project_service.get(project["id"], "user-2") is None
        assert await project_service.update(project["id"], "user-2", {"name": "x"}) is None
        assert await project_service.delete(project["id"], "user-2") is False
        assert await project_service.verify_ownership(project["id"], "user-1") is True

    async def test_pagination_pages(self, project_service):
        for i in range(3):
            await project_service.create("user-1", f"P{i}")

        page_two = await project_service.list_for_user("user-1", page=2, limit=2)

        assert len(page_two["projects"]) == 1
        assert page_two["pagination"]["hasNext"] is False
        assert page_two["pagination"]["hasPrev"] is True


class TestModelService:

    @pytest.fixture
    async def project(self, project_service):
        return await project_service.create("user-1", "Site")

    async def test_create_and_list_with_project_name(self, model_service, project):
        model = await model_service.create(
            "user-1", name="Tower", file_path="tower.glb", file_type="GLB",
            project_id=project["id"], file_size=2048, metadata={"source": "scan"},
        )

        assert model["file_type"] == ".glb"
        assert model["model_type"] == "static"
        assert model["project_name"] == "Site"
        assert model["metadata"] == {"source": "scan"}

        listed = await model_service.list_for_user("user-1")
        assert listed["models"][0]["project_name"] == "Site"

    async def test_rejects_unknown_extension(self, model_service, project):
        with pytest.raises(ModelValidationError):
            await model_service.create(
                "user-1", name="Bad", file_path="bad.exe", file_type=".exe",
                project_id=project["id"],
            )

    async def test_rejects_oversized_file(self, model_service, project, settings):
        with pytest.raises(ModelValidationError):
            await model_service.create(
                "user-1", name="Huge", file_path="huge.las", file_type=".las",
                project_id=project["id"], file_size=settings.max_file_size + 1,
            )

    async def test_rejects_foreign_project(self, model_service, project):
        with pytest.raises(ModelValidationError):
            await model_service.create(
                "user-2", name="Tower", file_path="t.glb", file_type=".glb",
                project_id=project["id"],
            )

    async def test_volumetric_only_when_requested(self, model_service, project):
        plain = await model_service.create(
            "user-1", name="Scan", file_path="scan.ply", file_type=".ply",
            project_id=project["id"],
        )
        video = await model_service.create(
            "user-1", name="Capture", file_path="frame_000.ply", file_type=".ply",
            project_id=project["id"], model_type="volumetric_video",
        )
        mesh = await model_service.create(
            "user-1", name="Mesh", file_path="mesh.glb", file_type=".glb",
            project_id=project["id"], model_type="volumetric_video",
        )

        assert plain["model_type"] == "static"
        assert video["model_type"] == "volumetric_video"
        assert mesh["model_type"] == "static"

    async def test_create_invalidates_list(self, model_service, project):
        await model_service.list_for_user("user-1")
        await model_service.create(
            "user-1", name="Tower", file_path="t.glb", file_type=".glb",
            project_id=project["id"],
        )

        listed = await model_service.list_for_user("user-1")
        assert listed["pagination"]["total"] == 1

    async def test_delete_removes_file_and_annotation_cache(self, model_service, project,
                                                           settings, cache, tmp_path):
        stored = tmp_path / "uploads" / "tower.glb"
        stored.write_bytes(b"glTF")
        model = await model_service.create(
            "user-1", name="Tower", file_path="uploads/tower.glb", file_type=".glb",
            project_id=project["id"],
        )
        cache.set(annotation_list_key(model["id"]), [], ttl=180)

        deleted = await model_service.delete(model["id"], "user-1")

        assert deleted["id"] == model["id"]
        assert not stored.exists()
        assert cache.get(annotation_list_key(model["id"])) is None
        assert await model_service.get(model["id"], "user-1") is None

    async def test_delete_missing_file_is_ignored(self, model_service, project):
        model = await model_service.create(
            "user-1", name="Ghost", file_path="never-uploaded.glb", file_type=".glb",
            project_id=project["id"],
        )
        assert await model_service.delete(model["id"], "user-1") is not None

    async def test_project_delete_detaches_models(self, model_service, project_service,
                                                  project, cache):
        model = await model_service.create(
            "user-1", name="Tower", file_path="t.glb", file_type=".glb",
            project_id=project["id"],
        )
        await model_service.list_for_user("user-1")

        assert await project_service.delete(project["id"], "user-1") is True

        assert cache.get(model_list_key("user-1", 1, 50)) is None
        fetched = await model_service.get(model["id"], "user-1")
        assert fetched["project_id"] is None
        assert fetched["project_name"] is None

    async def test_update_invalidates_every_cached_page(self, model_service, project, cache):
        model = await model_service.create(
            "user-1", name="Tower", file_path="t.glb", file_type=".glb",
            project_id=project["id"],
        )
        await model_service.list_for_user("user-1", page=1, limit=50)
        await model_service.list_for_user("user-1", page=2, limit=10)
        cache.set(model_list_key("user-2", 1, 50), {"models": []}, ttl=120)

        await model_service.update(model["id"], "user-1", {"name": "Renamed"})

        assert cache.get(model_list_key("user-1", 1, 50)) is None
        assert cache.get(model_list_key("user-1", 2, 10)) is None
        assert cache.get(model_list_key("user-2", 1, 50)) is not None
        listed = await model_service.list_for_user("user-1")
        assert listed["models"][0]["name"] == "Renamed"

    async def test_stats(self, model_service, project):
        for name, ext, size in [("a", ".glb", 10), ("b", ".glb", 20), ("c", ".las", 5)]:
            await model_service.create(
                "user-1", name=name, file_path=f"{name}{ext}", file_type=ext,
                project_id=project["id"], file_size=size,
            )

        assert await model_service.stats("user-1") == {
            "total_models": 3, "total_size": 35, "unique_types": 2,
        }
        assert await model_service.stats("user-2") == {
            "total_models": 0, "total_size": 0, "unique_types": 0,
        }


class TestAnnotationService:

    @pytest.fixture
    async def model(self, project_service, model_service):
        project = await project_service.create("user-1", "Site")
        return await model_service.create(
            "user-1", name="Tower", file_path="tower.glb", file_type=".glb",
            project_id=project["id"], origin_lat=0.0, origin_lon=0.0, origin_altitude=100.0,
        )

    async def test_create_fills_geography(self, annotation_service, model):
        annotation = await annotation_service.create(model["id"], "user-1", {
            "position_x": 0.0, "position_y": 0.0, "position_z": 5.0, "title": "Crack",
        })

        assert annotation["georeferenced"] is True
        assert annotation["latitude"] == 0.0
        assert annotation["altitude"] == 105.0
        assert annotation["color"] == "#FF0000"
        assert annotation["measurement_unit"] == "m"

    async def test_create_on_plain_model(self, annotation_service, project_service, model_service):
        project = await project_service.create("user-1", "Site")
        plain = await model_service.create(
            "user-1", name="Plain", file_path="p.glb", file_type=".glb", project_id=project["id"],
        )

        annotation = await annotation_service.create(plain["id"], "user-1", {
            "position_x": 1.0, "position_y": 2.0, "position_z": 3.0, "color": "#00FF00",
        })

        assert annotation["georeferenced"] is False
        assert annotation["latitude"] is None
        assert annotation["color"] == "#00FF00"

    async def test_list_cached_and_invalidated_on_create(self, annotation_service, model, cache):
        assert await annotation_service.list_for_model(model["id"]) == []
        assert cache.get(annotation_list_key(model["id"])) == []

        await annotation_service.create(model["id"], "user-1", {
            "position_x": 1.0, "position_y": 1.0, "position_z": 1.0,
        })

        assert cache.get(annotation_list_key(model["id"])) is None
        assert len(await annotation_service.list_for_model(model["id"])) == 1

    async def test_update_skips_null_required_fields(self, annotation_service, model):
        annotation = await annotation_service.create(model["id"], "user-1", {
            "position_x": 1.0, "position_y": 1.0, "position_z": 1.0,
        })

        updated = await annotation_service.update(annotation["id"], "user-1", {
            "title": "Moved", "position_x": 9.0, "color": None, "user_id": "user-2",
        })

        assert updated["title"] == "Moved"
        assert updated["position_x"] == 9.0
        assert updated["color"] == "#FF0000"
        assert updated["user_id"] == "user-1"

    async def test_other_user_cannot_modify(self, annotation_service, model):
        annotation = await annotation_service.create(model["id"], "user-1", {
            "position_x": 1.0, "position_y": 1.0, "position_z": 1.0,
        })

        assert await annotation_service.get(annotation["id"], "user-2") is None
        assert await annotation_service.update(annotation["id"], "user-2", {"title": "x"}) is None
        assert await annotation_service.delete(annotation["id"], "user-2") is False
        assert await annotation_service.add_image(annotation["id"], "user-2", {"image_path": "a.jpg"}) is None

    async def test_images_sorted_and_counted(self, annotation_service, model, cache):
        annotation = await annotation_service.create(model["id"], "user-1", {
            "position_x": 1.0, "position_y": 1.0, "position_z": 1.0,
        })
        await annotation_service.add_image(annotation["id"], "user-1",
                                           {"image_path": "second.jpg", "display_order": 2})
        await annotation_service.add_image(annotation["id"], "user-1",
                                           {"image_path": "first.jpg", "display_order": 1})

        listed = await annotation_service.list_for_model(model["id"])

        assert listed[0]["image_count"] == 2
        assert [i["image_path"] for i in listed[0]["images"]] == ["first.jpg", "second.jpg"]
        assert cache.get(annotation_list_key(model["id"])) is not None

        image_id = listed[0]["images"][0]["id"]
        assert await annotation_service.delete_image(image_id, "user-2") is False
        assert await annotation_service.delete_image(image_id, "user-1") is True
        assert cache.get(annotation_list_key(model["id"])) is None

        fetched = await annotation_service.get(annotation["id"], "user-1")
        assert fetched["image_count"] == 1

    async def test_model_delete_cascades(self, annotation_service, model_service, model, database):
        annotation = await annotation_service.create(model["id"], "user-1", {
            "position_x": 1.0, "position_y": 1.0, "position_z": 1.0,
        })
        await annotation_service.add_image(annotation["id"], "user-1", {"image_path": "a.jpg"})

        await model_service.delete(model["id"], "user-1")

        assert await annotation_service.get(annotation["id"], "user-1") is None
        assert await database.list_annotation_images([annotation["id"]]) == []

    async def test_update_invalidates_model_annotation_list(self, annotation_service, model, cache):
        annotation = await annotation_service.create(model["id"], "user-1", {
            "position_x": 1.0, "position_y": 1.0, "position_z": 1.0, "title": "Before",
        })
        await annotation_service.list_for_model(model["id"])
        assert cache.get(annotation_list_key(model["id"])) is not None

        await annotation_service.update(annotation["id"], "user-1", {"title": "After"})

        assert cache.get(annotation_list_key(model["id"])) is None
        listed = await annotation_service.list_for_model(model["id"])
        assert listed[0]["title"] == "After"

    async def test_delete_invalidates_model_annotation_list(self, annotation_service, model, cache):
        annotation = await annotation_service.create(model["id"], "user-1", {
            "position_x": 1.0, "position_y": 1.0, "position_z": 1.0,
        })
        await annotation_service.list_for_model(model["id"])

        assert await annotation_service.delete(annotation["id"], "user-1") is True

        assert cache.get(annotation_list_key(model["id"])) is None
        assert await annotation_service.list_for_model(model["id"]) == []

    async def test_moving_recomputes_geography(self, annotation_service, model):
        annotation = await annotation_service.create(model["id"], "user-1", {
            "position_x": 0.0, "position_y": 0.0, "position_z": 5.0,
        })

        moved = await annotation_service.update(annotation["id"], "user-1", {
            "position_x": EARTH_RADIUS * math.pi / 180,
        })

        assert moved["longitude"] == pytest.approx(1.0, abs=1e-12)
        assert moved["latitude"] == 0.0
        assert moved["altitude"] == 105.0
        assert moved["position_z"] == 5.0
        assert moved["georeferenced"] is True

    async def test_moving_on_plain_model_keeps_geography_empty(self, annotation_service,
                                                              project_service, model_service):
        project = await project_service.create("user-1", "Site")
        plain = await model_service.create(
            "user-1", name="Plain", file_path="p.glb", file_type=".glb", project_id=project["id"],
        )
        annotation = await annotation_service.create(plain["id"], "user-1", {
            "position_x": 1.0, "position_y": 2.0, "position_z": 3.0,
        })

        moved = await annotation_service.update(annotation["id"], "user-1", {"position_y": 8.0})

        assert moved["position_y"] == 8.0
        assert moved["latitude"] is None
        assert moved["georeferenced"] is False

    async def test_moving_foreign_annotation(self, annotation_service, model):
        annotation = await annotation_service.create(model["id"], "user-1", {
            "position_x": 1.0, "position_y": 1.0, "position_z": 1.0,
        })

        assert await annotation_service.update(annotation["id"], "user-2", {"position_x": 2.0}) is None
        fetched = await annotation_service.get(annotation["id"], "user-1")
        assert fetched["position_x"] == 1.0

    async def test_verify_ownership(self, annotation_service, model):
        annotation = await annotation_service.create(model["id"], "user-1", {
            "position_x": 1.0, "position_y": 1.0, "position_z": 1.0,
        })

        assert await annotation_service.verify_ownership(annotation["id"], "user-1") is True
        assert await annotation_service.verify_ownership(annotation["id"], "user-2") is False
        assert await annotation_service.verify_ownership("missing", "user-1") is False
