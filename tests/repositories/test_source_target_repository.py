# tests/repositories/test_source_target_repository.py
import pytest

from conftest import make_batch, make_instance, make_source, make_target
from migration_manager.domain import SourceType
from migration_manager.services.exceptions import ConstraintViolationError, NotFoundError


class TestSourceRepository:
    def test_create_assigns_id_and_round_trips(self, source_repo):
        created = source_repo.create(make_source(properties={"endpoint": "https://vc", "username": "u", "password": "p"}))

        assert created.id > 0
        assert source_repo.get_by_name("vcenter-01") == created
        assert source_repo.get_by_id(created.id) == created

    def test_duplicate_name_raises_constraint_violation(self, source_repo):
        source_repo.create(make_source())

        with pytest.raises(ConstraintViolationError):
            source_repo.create(make_source())

    def test_names_are_sorted(self, source_repo):
        source_repo.create(make_source("b-source"))
        source_repo.create(make_source("a-source", source_type=SourceType.COMMON, properties={}))

        assert source_repo.get_all_names() == ["a-source", "b-source"]

    def test_update_missing_raises_not_found(self, source_repo):
        missing = make_source(id=42)

        with pytest.raises(NotFoundError):
            source_repo.update_by_id(missing)

    def test_delete_referenced_source_is_refused(self, source_repo, instance_repo, source):
        """인스턴스가 참조하는 소스는 삭제할 수 없는지 테스트합니다."""
        instance_repo.create(make_instance(source.id))

        with pytest.raises(ConstraintViolationError):
            source_repo.delete_by_name(source.name)
        assert source_repo.get_by_name(source.name).id == source.id

    def test_delete_unreferenced_source(self, source_repo, source):
        source_repo.delete_by_name(source.name)

        with pytest.raises(NotFoundError):
            source_repo.get_by_name(source.name)
        with pytest.raises(NotFoundError):
            source_repo.delete_by_name(source.name)


class TestTargetRepository:
    def test_update_round_trip(self, target_repo, target):
        target.properties = {"endpoint": "qemu+ssh://kvm02/system", "storage_dir": "/srv/images"}

        target_repo.update_by_id(target)

        assert target_repo.get_by_id(target.id).properties["storage_dir"] == "/srv/images"

    def test_delete_target_referenced_by_batch_is_refused(self, target_repo, batch_repo, target):
        """배치가 참조하는 타겟은 삭제할 수 없는지 테스트합니다."""
        batch_repo.create(make_batch(target.id))

        with pytest.raises(ConstraintViolationError):
            target_repo.delete_by_name(target.name)

    def test_delete_unreferenced_target(self, target_repo):
        created = target_repo.create(make_target("spare"))

        target_repo.delete_by_name(created.name)

        assert target_repo.get_all_names() == []
