#!/usr/bin/env python3
"""
Tests for the simulated filesystem.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import json
import pytest
from ecmachine.filesystem import (
    FileSystem, FileNode, DirNode, seed_filesystem,
    FileSystemError, PathNotFoundError, EntryNotFoundError,
    IsDirectoryError, AlreadyExistsError
)


@pytest.fixture
def fs():
    """Create an empty filesystem for each test."""
    return FileSystem()


@pytest.fixture
def populated_fs():
    """Create a filesystem with a small tree."""
    fs = FileSystem()
    fs.make_dir('/home')
    fs.make_dir('/home/guest')
    fs.make_dir('/tmp')
    fs.save_file('/home/guest/notes', 'remember the milk')
    fs.save_file('/tmp/b', 'b')
    fs.save_file('/tmp/a', 'a')
    return fs


class TestPathResolution:
    """Test resolve() against the current directory."""

    def test_root(self, fs):
        assert fs.resolve('/') == '/'

    def test_relative_from_root(self, fs):
        assert fs.resolve('x') == '/x'
        assert fs.resolve('x/y') == '/x/y'

    def test_relative_from_subdirectory(self, populated_fs):
        populated_fs.navigate('/home/guest')
        assert populated_fs.resolve('notes') == '/home/guest/notes'
        assert populated_fs.resolve('..') == '/home'
        assert populated_fs.resolve('../../tmp') == '/tmp'

    def test_absolute_ignores_cwd(self, populated_fs):
        populated_fs.navigate('/home')
        assert populated_fs.resolve('/tmp/a') == '/tmp/a'

    def test_dotdot_stops_at_root(self, fs):
        assert fs.resolve('../../..') == '/'

    def test_repeated_slashes_collapse(self, fs):
        assert fs.resolve('//a///b/') == '/a/b'
        assert fs.resolve('a/./b') == '/a/b'

    def test_quote_marker_stripped(self, fs):
        assert fs.resolve("'docs") == '/docs'


class TestListing:
    """Test list_files."""

    def test_sorted_listing(self, populated_fs):
        assert populated_fs.list_files('/tmp') == ['a', 'b']

    def test_defaults_to_current_directory(self, populated_fs):
        assert populated_fs.list_files() == ['home', 'tmp']
        populated_fs.navigate('home')
        assert populated_fs.list_files() == ['guest']

    def test_missing_directory(self, fs):
        with pytest.raises(PathNotFoundError):
            fs.list_files('/nope')

    def test_listing_a_file(self, populated_fs):
        with pytest.raises(PathNotFoundError):
            populated_fs.list_files('/tmp/a')


class TestNavigation:
    """Test navigate."""

    def test_navigate_returns_new_path(self, populated_fs):
        assert populated_fs.navigate('home/guest') == '/home/guest'
        assert populated_fs.cwd == '/home/guest'
        assert populated_fs.navigate('..') == '/home'
        assert populated_fs.navigate('/') == '/'

    def test_navigate_missing(self, fs):
        with pytest.raises(PathNotFoundError) as excinfo:
            fs.navigate('nope')
        assert 'does not exist' in str(excinfo.value)
        assert excinfo.value.path == '/nope'
        assert fs.cwd == '/'

    def test_navigate_into_file(self, populated_fs):
        with pytest.raises(PathNotFoundError):
            populated_fs.navigate('/tmp/a')


class TestFiles:
    """Test reading and writing files."""

    def test_save_and_read(self, fs):
        assert fs.save_file('greeting', 'hello') == '/greeting'
        assert fs.read_file('/greeting') == 'hello'

    def test_save_overwrites(self, populated_fs):
        populated_fs.save_file('/tmp/a', 'changed')
        assert populated_fs.read_file('/tmp/a') == 'changed'
        assert populated_fs.list_files('/tmp') == ['a', 'b']

    def test_read_relative(self, populated_fs):
        populated_fs.navigate('/home/guest')
        assert populated_fs.read_file('notes') == 'remember the milk'

    def test_read_missing(self, fs):
        with pytest.raises(EntryNotFoundError):
            fs.read_file('/missing')

    def test_read_directory(self, populated_fs):
        with pytest.raises(IsDirectoryError):
            populated_fs.read_file('/home')

    def test_save_onto_directory(self, populated_fs):
        with pytest.raises(IsDirectoryError):
            populated_fs.save_file('/home', 'x')

    def test_save_into_missing_directory(self, fs):
        with pytest.raises(PathNotFoundError):
            fs.save_file('/no/such/file', 'x')

    def test_new_file(self, fs):
        assert fs.new_file('empty') == '/empty'
        assert fs.read_file('empty') == ''
        with pytest.raises(AlreadyExistsError):
            fs.new_file('empty')

    def test_errors_share_a_base_and_builtin_types(self, fs):
        with pytest.raises(FileSystemError):
            fs.read_file('/missing')
        with pytest.raises(FileNotFoundError):
            fs.read_file('/missing')
        fs.make_dir('d')
        with pytest.raises(IsADirectoryError):
            fs.read_file('d')
        with pytest.raises(FileExistsError):
            fs.make_dir('d')


class TestDirectories:
    """Test make_dir."""

    def test_make_dir_round_trip(self, fs):
        assert fs.make_dir('x') == '/x'
        assert fs.navigate('x') == '/x'
        fs.navigate('..')
        assert 'x' in fs.list_files()

    def test_make_dir_already_exists(self, populated_fs):
        with pytest.raises(AlreadyExistsError):
            populated_fs.make_dir('/home')
        with pytest.raises(AlreadyExistsError):
            populated_fs.make_dir('/tmp/a')

    def test_make_dir_root(self, fs):
        with pytest.raises(AlreadyExistsError):
            fs.make_dir('/')

    def test_make_dir_missing_parent(self, fs):
        with pytest.raises(PathNotFoundError):
            fs.make_dir('/a/b')

    def test_exists_and_is_dir(self, populated_fs):
        assert populated_fs.exists('/tmp/a')
        assert not populated_fs.exists('/tmp/c')
        assert populated_fs.is_dir('/tmp')
        assert not populated_fs.is_dir('/tmp/a')


class TestNodes:
    """Test immutable nodes."""

    def test_with_child_returns_copy(self):
        d = DirNode()
        d2 = d.with_child('b').with_child('a')
        assert d.children == ()
        assert d2.children == ('a', 'b')
        assert d2.with_child('a') is d2

    def test_file_node(self):
        assert FileNode('x').to_dict() == {'type': 'file', 'content': 'x'}
        assert not FileNode().is_dir()


class TestPersistence:
    """Test JSON serialization."""

    def test_round_trip(self, populated_fs):
        populated_fs.navigate('/home/guest')
        restored = FileSystem.from_json(populated_fs.to_json())
        assert restored.cwd == '/home/guest'
        assert restored.list_files('/') == ['home', 'tmp']
        assert restored.read_file('notes') == 'remember the milk'
        assert restored.nodes == populated_fs.nodes

    def test_json_layout(self, populated_fs):
        data = json.loads(populated_fs.to_json())
        assert data['cwd'] == '/'
        assert data['nodes']['/tmp'] == {'type': 'dir', 'children': ['a', 'b']}

    def test_missing_cwd_falls_back_to_root(self):
        data = {'cwd': '/gone', 'nodes': {'/': {'type': 'dir', 'children': []}}}
        fs = FileSystem.from_json(json.dumps(data))
        assert fs.cwd == '/'

    @pytest.mark.parametrize("data", [
        [1, 2],
        "text",
        {},
        {'nodes': []},
        {'nodes': {'/': 5}},
        {'nodes': {'/': {'type': 'link'}}},
        {'nodes': {'/': {'type': 'dir', 'children': 'ab'}}},
        {'nodes': {'/a': {'type': 'file', 'content': 3}}},
    ])
    def test_wrong_shape_raises_value_error(self, data):
        with pytest.raises(ValueError):
            FileSystem.from_json(json.dumps(data))

    def test_non_text_cwd_falls_back_to_root(self):
        data = {'cwd': 7, 'nodes': {'/': {'type': 'dir', 'children': []}}}
        assert FileSystem.from_json(json.dumps(data)).cwd == '/'


class TestSeed:
    """Test the default session tree."""

    def test_seed(self, fs):
        seed_filesystem(fs)
        assert fs.list_files('/') == ['README', 'home', 'scripts']
        assert fs.list_files('/scripts') == ['fact.lisp', 'hello.lisp']
        assert 'define fact' in fs.read_file('/scripts/fact.lisp')
