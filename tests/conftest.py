"""
Shared pytest fixtures for worldsnap tests.

This module provides fixtures for:
- Flask app, test client and CLI runner
- Database setup with in-memory SQLite
- Data store trees (two worlds) on disk
- A recording host that logs every flush and autosave change
- Backup settings and helpers to read artifacts back
"""

import io
import os
import tarfile
import zipfile
from pathlib import Path

import pytest
import zstandard

from worldsnap import create_app, db as _db
from worldsnap.backup.formats import CompressType, CompressionLevels
from worldsnap.backup.host import DataStoreUnit, FlushCapability, FlushError
from worldsnap.backup.retention import RetentionPolicy
from worldsnap.backup.service import BackupSettings


class RecordingHost(FlushCapability):
    """
    Host double that records calls in order.

    Failures can be switched on per operation to exercise the best-effort
    paths of the coordinator.
    """

    def __init__(self, units):
        self.units = list(units)
        self.calls = []
        self.fail_sessions = False
        self.fail_units = set()

    def flush_sessions(self):
        self.calls.append(('flush_sessions',))
        if self.fail_sessions:
            raise FlushError("session save failed")

    def flush_unit(self, unit):
        self.calls.append(('flush_unit', unit.name, unit.autosave))
        if unit.name in self.fail_units:
            raise FlushError(f"save of {unit.name} failed")

    def set_autosave(self, unit, flag):
        self.calls.append(('set_autosave', unit.name, flag))
        unit.autosave = flag


@pytest.fixture
def world_dirs(tmp_path):
    """
    Create two data store unit trees.

    Creates:
    - worlds/world/level.dat
    - worlds/world/region/r.0.0.mca (random bytes)
    - worlds/world/playerdata/ (empty directory)
    - worlds/world_nether/DIM-1/region/r.0.0.mca
    """
    worlds = tmp_path / 'worlds'

    world = worlds / 'world'
    (world / 'region').mkdir(parents=True)
    (world / 'playerdata').mkdir()
    (world / 'level.dat').write_bytes(b'level data')
    (world / 'region' / 'r.0.0.mca').write_bytes(os.urandom(64 * 1024))

    nether = worlds / 'world_nether'
    (nether / 'DIM-1' / 'region').mkdir(parents=True)
    (nether / 'DIM-1' / 'region' / 'r.0.0.mca').write_bytes(os.urandom(8 * 1024))

    return [world, nether]


@pytest.fixture
def units(world_dirs):
    """Units over the world trees; world has autosave off, world_nether on."""
    return [
        DataStoreUnit('world', world_dirs[0], autosave=False),
        DataStoreUnit('world_nether', world_dirs[1], autosave=True),
    ]


@pytest.fixture
def recording_host(units):
    return RecordingHost(units)


@pytest.fixture
def backups_dir(tmp_path):
    path = tmp_path / 'backups'
    path.mkdir()
    return path


@pytest.fixture
def backup_settings(backups_dir, world_dirs):
    """Settings with retention disabled and fast compression levels."""
    return BackupSettings(
        backups_dir=backups_dir,
        data_dirs=[str(p) for p in world_dirs],
        default_compress_type=CompressType.ZSTD,
        levels=CompressionLevels(zstd_level=3, zip_level=1),
        policy=RetentionPolicy(0, 0)
    )


@pytest.fixture
def app_config(tmp_path, world_dirs, backups_dir):
    data_dir = tmp_path / 'data'
    return {
        'DATA_DIR': str(data_dir),
        'LOG_DIR': str(data_dir / 'logs'),
        'BACKUPS_DIR': str(backups_dir),
        'DATA_DIRS': [str(p) for p in world_dirs],
        'KEEP_LAST_N_BACKUPS': 0,
        'BACKUPS_DIR_STORAGE_LIMIT_MB': 0,
        'COMPRESS_ZSTD_LEVEL': 3,
        'COMPRESS_ZIP_LEVEL': 1,
    }


@pytest.fixture(scope='function')
def app(app_config):
    """
    Create Flask app with test configuration.

    Uses in-memory SQLite and temporary data/backups directories.
    """
    app = create_app('testing', app_config)

    yield app

    app.extensions['worldsnap'].shutdown()


@pytest.fixture(scope='function')
def db(app):
    """
    Database with all tables, inside an app context.
    """
    with app.app_context():
        _db.create_all()
        yield _db
        _db.session.remove()
        _db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Flask test client for making HTTP requests."""
    return app.test_client()


@pytest.fixture(scope='function')
def runner(app):
    """Flask CLI test runner."""
    return app.test_cli_runner()


def read_tar_zst(path):
    """Decompress a .tar.zst artifact and return {name: TarInfo, ...} and file bytes."""
    raw = io.BytesIO()
    with open(path, 'rb') as f:
        zstandard.ZstdDecompressor().copy_stream(f, raw)
    raw.seek(0)

    members = {}
    contents = {}
    with tarfile.open(fileobj=raw, mode='r:') as tar:
        for member in tar.getmembers():
            members[member.name] = member
            if member.isreg():
                contents[member.name] = tar.extractfile(member).read()
    return members, contents


def read_zip(path):
    """Return {name: ZipInfo} and {name: bytes} for file entries of a zip artifact."""
    with zipfile.ZipFile(path) as zf:
        infos = {info.filename: info for info in zf.infolist()}
        contents = {
            name: zf.read(name)
            for name, info in infos.items()
            if not info.is_dir()
        }
    return infos, contents


def expected_entries(roots):
    """Entry names the pipeline should produce for the given roots (dirs without slash)."""
    names = set()
    for root in roots:
        root = Path(root)
        names.add(root.name)
        for dirpath, dirnames, filenames in os.walk(root):
            for name in dirnames + filenames:
                names.add((Path(dirpath) / name).relative_to(root.parent).as_posix())
    return names


@pytest.fixture
def read_artifact():
    """
    Reader for produced artifacts.

    Returns a function mapping an artifact path to ({name: info}, {name: bytes}),
    where names are container entry names without trailing slashes.
    """
    def _read(path):
        path = str(path)
        if path.endswith('.tar.zst'):
            return read_tar_zst(path)
        infos, contents = read_zip(path)
        return (
            {name.rstrip('/'): info for name, info in infos.items()},
            contents
        )
    return _read


@pytest.fixture
def entries_of():
    return expected_entries
