"""
Volumetric video and photogrammetry job bookkeeping: owner scoping, frame
ranges and upserts, and cleanup when the parent model goes away.
"""
import pytest

from services.photogrammetry import PhotogrammetryValidationError


@pytest.fixture
async def model(project_service, model_service):
    project = await project_service.create("user-1", "Capture stage")
    return await model_service.create(
        "user-1", name="Dancer", file_path="dancer_000.ply", file_type=".ply",
        project_id=project["id"], model_type="volumetric_video",
    )


class TestVolumetricVideoService:

    async def test_create_applies_defaults(self, volumetric_service, model):
        video = await volumetric_service.create(model["id"], "user-1", {
            "video_path": "captures/dancer", "frame_count": 0, "fps": 30.0,
        })

        assert video["format"] == "PLY_SEQUENCE"
        assert video["frame_count"] is None
        assert video["fps"] == 30.0
        assert video["resolution_width"] is None

    async def test_create_on_foreign_model(self, volumetric_service, model):
        assert await volumetric_service.create(model["id"], "user-2", {"video_path": "x"}) is None

    async def test_get_includes_model_details(self, volumetric_service, model):
        video = await volumetric_service.create(model["id"], "user-1", {"video_path": "captures/a"})

        fetched = await volumetric_service.get(video["id"], "user-1")

        assert fetched["model_name"] == "Dancer"
        assert fetched["model_path"] == "dancer_000.ply"
        assert await volumetric_service.get(video["id"], "user-2") is None

    async def test_get_for_model_returns_newest(self, volumetric_service, model):
        await volumetric_service.create(model["id"], "user-1", {"video_path": "captures/first"})
        newest = await volumetric_service.create(model["id"], "user-1", {"video_path": "captures/second"})

        latest = await volumetric_service.get_for_model(model["id"], "user-1")

        assert latest["id"] == newest["id"]
        assert await volumetric_service.get_for_model(model["id"], "user-2") is None

    async def test_get_for_model_without_video(self, volumetric_service, model):
        assert await volumetric_service.get_for_model(model["id"], "user-1") is None

    async def test_frame_range_is_inclusive_and_ordered(self, volumetric_service, model):
        video = await volumetric_service.create(model["id"], "user-1", {"video_path": "captures/a"})
        for number in (4, 0, 2, 1, 3):
            await volumetric_service.add_frame(video["id"], "user-1", number, f"frame_{number}.ply")

        result = await volumetric_service.list_frames(video["id"], "user-1",
                                                      start_frame="1", end_frame="3")

        assert [f["frame_number"] for f in result["frames"]] == [1, 2, 3]
        assert result["limit"] == 100

    async def test_frame_limit_is_clamped(self, volumetric_service, model):
        video = await volumetric_service.create(model["id"], "user-1", {"video_path": "captures/a"})
        for number in range(3):
            await volumetric_service.add_frame(video["id"], "user-1", number, f"f{number}.ply")

        one = await volumetric_service.list_frames(video["id"], "user-1", limit="-4")
        capped = await volumetric_service.list_frames(video["id"], "user-1", limit="5000")

        assert len(one["frames"]) == 1
        assert one["limit"] == 1
        assert capped["limit"] == 1000
        assert len(capped["frames"]) == 3

    async def test_huge_frame_bound_does_not_overflow(self, volumetric_service, model):
        video = await volumetric_service.create(model["id"], "user-1", {"video_path": "captures/a"})
        await volumetric_service.add_frame(video["id"], "user-1", 0, "f0.ply")

        result = await volumetric_service.list_frames(
            video["id"], "user-1", end_frame="100000000000000000000"
        )

        assert len(result["frames"]) == 1

    async def test_add_frame_replaces_existing_number(self, volumetric_service, model):
        video = await volumetric_service.create(model["id"], "user-1", {"video_path": "captures/a"})
        await volumetric_service.add_frame(video["id"], "user-1", 7, "old.ply", 0.2)
        await volumetric_service.add_frame(video["id"], "user-1", 7, "new.ply", 0.25)

        frames = (await volumetric_service.list_frames(video["id"], "user-1"))["frames"]

        assert len(frames) == 1
        assert frames[0]["frame_path"] == "new.ply"
        assert frames[0]["timestamp"] == 0.25

    async def test_frames_of_foreign_video(self, volumetric_service, model):
        video = await volumetric_service.create(model["id"], "user-1", {"video_path": "captures/a"})

        assert await volumetric_service.add_frame(video["id"], "user-2", 0, "f.ply") is None
        assert await volumetric_service.list_frames(video["id"], "user-2") is None

    async def test_delete_removes_frames(self, volumetric_service, database, model):
        video = await volumetric_service.create(model["id"], "user-1", {"video_path": "captures/a"})
        await volumetric_service.add_frame(video["id"], "user-1", 0, "f.ply")

        assert await volumetric_service.delete(video["id"], "user-2") is False
        assert await volumetric_service.delete(video["id"], "user-1") is True

        assert await volumetric_service.get(video["id"], "user-1") is None
        assert await database.list_volumetric_frames(video["id"], None, None, 100) == []

    async def test_model_delete_removes_videos(self, volumetric_service, model_service,
                                               database, model):
        video = await volumetric_service.create(model["id"], "user-1", {"video_path": "captures/a"})
        await volumetric_service.add_frame(video["id"], "user-1", 0, "f.ply")

        await model_service.delete(model["id"], "user-1")

        assert await volumetric_service.get(video["id"], "user-1") is None
        assert await database.list_volumetric_frames(video["id"], None, None, 100) == []


class TestPhotogrammetryService:

    async def test_create_starts_pending(self, photogrammetry_service, model):
        job = await photogrammetry_service.create(model["id"], "user-1", {
            "input_images_count": 48, "quality_settings": {"preset": "high"},
        })

        assert job["processing_status"] == "pending"
        assert job["reconstruction_method"] == "SfM"
        assert job["input_images_count"] == 48
        assert job["quality_settings"] == {"preset": "high"}

    async def test_create_on_foreign_model(self, photogrammetry_service, model):
        assert await photogrammetry_service.create(model["id"], "user-2", {}) is None

    async def test_get_and_list(self, photogrammetry_service, model):
        first = await photogrammetry_service.create(model["id"], "user-1", {})
        second = await photogrammetry_service.create(model["id"], "user-1", {"reconstruction_method": "MVS"})

        fetched = await photogrammetry_service.get(first["id"], "user-1")
        listed = await photogrammetry_service.list_for_model(model["id"], "user-1")

        assert fetched["model_name"] == "Dancer"
        assert [j["id"] for j in listed] == [second["id"], first["id"]]
        assert await photogrammetry_service.get(first["id"], "user-2") is None
        assert await photogrammetry_service.list_for_model(model["id"], "user-2") is None

    async def test_update_progress_writes_only_reported_fields(self, photogrammetry_service, model):
        job = await photogrammetry_service.create(model["id"], "user-1", {"input_images_count": 10})

        updated = await photogrammetry_service.update_progress(job["id"], "user-1", {
            "processing_status": "completed", "output_mesh_path": "meshes/out.obj",
            "processing_log": None, "input_images_count": 99,
        })

        assert updated["processing_status"] == "completed"
        assert updated["output_mesh_path"] == "meshes/out.obj"
        assert updated["processing_log"] is None
        assert updated["input_images_count"] == 10

    async def test_update_rejects_unknown_status(self, photogrammetry_service, model):
        job = await photogrammetry_service.create(model["id"], "user-1", {})

        with pytest.raises(PhotogrammetryValidationError):
            await photogrammetry_service.update_progress(job["id"], "user-1",
                                                         {"processing_status": "exploded"})

    async def test_update_foreign_job(self, photogrammetry_service, model):
        job = await photogrammetry_service.create(model["id"], "user-1", {})
        assert await photogrammetry_service.update_progress(
            job["id"], "user-2", {"processing_status": "failed"}
        ) is None

    async def test_project_delete_detaches_job(self, photogrammetry_service, project_service, model):
        job = await photogrammetry_service.create(model["id"], "user-1",
                                                  {"project_id": model["project_id"]})

        await project_service.delete(model["project_id"], "user-1")

        assert (await photogrammetry_service.get(job["id"], "user-1"))["project_id"] is None

    async def test_model_delete_removes_jobs(self, photogrammetry_service, model_service, model):
        job = await photogrammetry_service.create(model["id"], "user-1", {})

        await model_service.delete(model["id"], "user-1")

        assert await photogrammetry_service.get(job["id"], "user-1") is None


class TestVolumetricRoutes:

    @pytest.fixture
    def api_model(self, client, owner_headers):
        project = client.post("/api/projects", json={"name": "Stage"},
                              headers=owner_headers).json()["project"]
        response = client.post("/api/models", json={
            "name": "Capture", "file_path": "capture_000.ply", "file_type": ".ply",
            "project_id": project["id"], "model_type": "volumetric_video",
        }, headers=owner_headers)
        assert response.status_code == 201
        return response.json()["model"]

    def test_video_lifecycle(self, client, owner_headers, other_headers, api_model):
        created = client.post("/api/volumetric-video/videos", json={
            "model_id": api_model["id"], "video_path": "captures/run1", "fps": 24,
        }, headers=owner_headers)
        assert created.status_code == 201
        video = created.json()["video"]

        by_model = client.get(f"/api/volumetric-video/models/{api_model['id']}/video",
                              headers=owner_headers)
        assert by_model.json()["video"]["id"] == video["id"]

        for number in (2, 0, 1):
            added = client.post(f"/api/volumetric-video/videos/{video['id']}/frames",
                                json={"frame_number": number, "frame_path": f"f{number}.ply"},
                                headers=owner_headers)
            assert added.status_code == 201

        frames = client.get(f"/api/volumetric-video/videos/{video['id']}/frames?start_frame=1",
                            headers=owner_headers).json()["frames"]
        assert [f["frame_number"] for f in frames] == [1, 2]

        assert client.get(f"/api/volumetric-video/videos/{video['id']}",
                          headers=other_headers).status_code == 404
        assert client.delete(f"/api/volumetric-video/videos/{video['id']}",
                             headers=owner_headers).status_code == 200
        assert client.get(f"/api/volumetric-video/videos/{video['id']}",
                          headers=owner_headers).status_code == 404

    def test_video_on_foreign_model(self, client, other_headers, api_model):
        response = client.post("/api/volumetric-video/videos", json={
            "model_id": api_model["id"], "video_path": "x",
        }, headers=other_headers)
        assert response.status_code == 404

    def test_negative_frame_number_is_422(self, client, owner_headers, api_model):
        video = client.post("/api/volumetric-video/videos", json={
            "model_id": api_model["id"], "video_path": "x",
        }, headers=owner_headers).json()["video"]

        response = client.post(f"/api/volumetric-video/videos/{video['id']}/frames",
                               json={"frame_number": -1, "frame_path": "f.ply"},
                               headers=owner_headers)
        assert response.status_code == 422

    def test_photogrammetry_job(self, client, owner_headers, other_headers, api_model):
        created = client.post("/api/photogrammetry/projects", json={
            "model_id": api_model["id"], "input_images_count": 12,
        }, headers=owner_headers)
        assert created.status_code == 201
        job = created.json()["project"]

        listed = client.get(f"/api/photogrammetry/models/{api_model['id']}/projects",
                            headers=owner_headers).json()["projects"]
        assert [j["id"] for j in listed] == [job["id"]]

        bad = client.put(f"/api/photogrammetry/projects/{job['id']}",
                         json={"processing_status": "exploded"}, headers=owner_headers)
        assert bad.status_code == 400

        done = client.put(f"/api/photogrammetry/projects/{job['id']}",
                          json={"processing_status": "completed"}, headers=owner_headers)
        assert done.json()["project"]["processing_status"] == "completed"

        assert client.get(f"/api/photogrammetry/projects/{job['id']}",
                          headers=other_headers).status_code == 404

    def test_photogrammetry_job_on_foreign_project(self, client, owner_headers,
                                                   other_headers, api_model):
        foreign = client.post("/api/projects", json={"name": "Theirs"},
                              headers=other_headers).json()["project"]

        response = client.post("/api/photogrammetry/projects", json={
            "model_id": api_model["id"], "project_id": foreign["id"],
        }, headers=owner_headers)

        assert response.status_code == 404
        assert response.json()["detail"] == "Project not found"
