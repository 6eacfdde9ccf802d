from storefront.config import StorefrontConfig
from storefront.identity.session import FileSessionProvider, Identity, MemorySessionProvider, session_provider


class TestMemorySessionProvider:
    def test_anonymous_by_default(self):
        assert MemorySessionProvider().current_identity() is None

    def test_sign_in_and_out(self):
        provider = MemorySessionProvider()
        identity = Identity(id="user-1", email="ada@example.com")

        provider.sign_in(identity)
        assert provider.current_identity() == identity

        provider.sign_out()
        assert provider.current_identity() is None


class TestFileSessionProvider:
    def test_missing_file_is_anonymous(self, tmp_path):
        assert FileSessionProvider(tmp_path / "session.json").current_identity() is None

    def test_round_trip_through_disk(self, tmp_path):
        provider = FileSessionProvider(tmp_path / "nested" / "session.json")
        provider.sign_in(Identity(id="user-1", email="ada@example.com", role="admin"))

        identity = FileSessionProvider(tmp_path / "nested" / "session.json").current_identity()

        assert identity == Identity(id="user-1", email="ada@example.com", role="admin")

    def test_extra_credential_fields_are_ignored(self, tmp_path):
        path = tmp_path / "session.json"
        path.write_text('{"id": "user-1", "email": "ada@example.com", "token": "opaque"}', encoding="utf-8")
        assert FileSessionProvider(path).current_identity().id == "user-1"

    def test_malformed_file_is_anonymous(self, tmp_path):
        path = tmp_path / "session.json"
        path.write_text("{not json", encoding="utf-8")
        assert FileSessionProvider(path).current_identity() is None

    def test_incomplete_credential_is_anonymous(self, tmp_path):
        path = tmp_path / "session.json"
        path.write_text('{"email": "ada@example.com"}', encoding="utf-8")
        assert FileSessionProvider(path).current_identity() is None

    def test_sign_out_removes_credential(self, tmp_path):
        provider = FileSessionProvider(tmp_path / "session.json")
        provider.sign_in(Identity(id="user-1", email="ada@example.com"))
        provider.sign_out()
        provider.sign_out()
        assert provider.current_identity() is None
        assert not (tmp_path / "session.json").exists()


class TestSessionProviderFromConfig:
    def test_without_session_file_is_in_memory(self, config):
        provider = session_provider(config.session_file)
        assert isinstance(provider, MemorySessionProvider)
        assert provider.current_identity() is None

    def test_session_file_from_env_is_used(self, tmp_path, monkeypatch):
        path = tmp_path / "session.json"
        FileSessionProvider(path).sign_in(Identity(id="user-9", email="grace@example.com"))
        monkeypatch.setenv("STOREFRONT_SESSION_FILE", str(path))

        provider = session_provider(StorefrontConfig.from_env().session_file)

        assert isinstance(provider, FileSessionProvider)
        assert provider.current_identity().id == "user-9"
