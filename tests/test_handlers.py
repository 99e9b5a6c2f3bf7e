"""Tests for the handler contract and the built-in handlers."""

import pytest

from src.fleet_migrate.handlers.builtin import (
    EnsureLinesHandler,
    RegexReplaceHandler,
    RemoveFilesHandler,
    matching_files,
)
from src.fleet_migrate.migration.handler import ChangeSet, MutationHandler, load_handler
from src.fleet_migrate.models.repository import RepositoryDescriptor, WorkingCopy

BUILTIN = 'src.fleet_migrate.handlers.builtin'


class NoopHandler(MutationHandler):
    branch_name = 'T-1/noop'
    commit_message = 'T-1/Nothing'

    def is_applicable(self, working_copy):
        return False

    def apply(self, working_copy):
        return []


@pytest.fixture
def working_copy(tmp_path):
    repository = RepositoryDescriptor(organization='acme', name='svc')
    (tmp_path / '.git').mkdir()
    (tmp_path / '.git' / 'config.tf').write_text('region = "us-east-1"\n')
    (tmp_path / 'infra').mkdir()
    (tmp_path / 'infra' / 'main.tf').write_text('region = "us-east-1"\n')
    (tmp_path / 'infra' / 'vars.tf').write_text('name = "svc"\n')
    (tmp_path / 'README.md').write_text('# svc\n')
    return WorkingCopy(repository=repository, path=tmp_path)


class TestChangeSet:
    """Test change set behaviour."""

    def test_add_deduplicates(self):
        """Test paths are kept once, in insertion order."""
        change_set = ChangeSet()
        change_set.add('a.tf')
        change_set.extend(['b.tf', 'a.tf'])

        assert list(change_set) == ['a.tf', 'b.tf']
        assert len(change_set) == 2
        assert change_set

    def test_empty_is_falsy(self):
        """Test empty change set is falsy."""
        assert not ChangeSet()

    def test_coerce(self):
        """Test coercion from handler return values."""
        existing = ChangeSet(['x'])

        assert ChangeSet.coerce(existing) is existing
        assert ChangeSet.coerce(None).paths == []
        assert ChangeSet.coerce(['a', None, 'b']).paths == ['a', 'b']

    def test_coerce_rejects_string(self):
        """Test a bare string is not mistaken for a list of paths."""
        with pytest.raises(TypeError):
            ChangeSet.coerce('a.tf')


class TestMutationHandler:
    """Test the handler base class."""

    def test_metadata_from_class(self):
        """Test metadata declared as class attributes."""
        handler = NoopHandler()

        assert handler.branch_name == 'T-1/noop'
        assert handler.reviewer is None
        assert handler.name == 'NoopHandler'
        assert 'T-1/noop' in repr(handler)

    def test_metadata_overrides(self):
        """Test constructor arguments override class attributes."""
        handler = NoopHandler(branch_name='T-2/other', reviewer='acme/devops')

        assert handler.branch_name == 'T-2/other'
        assert handler.reviewer == 'acme/devops'

    def test_branch_name_required(self):
        """Test a handler without a branch name is rejected."""
        with pytest.raises(ValueError, match='branch_name'):
            NoopHandler(branch_name='')

    def test_staging_patterns(self):
        """Test globs win over reported paths."""
        change_set = ChangeSet(['infra/main.tf'])

        assert NoopHandler().staging_patterns(change_set) == ['infra/main.tf']
        assert NoopHandler(file_patterns=['*/main.tf']).staging_patterns(change_set) == [
            '*/main.tf'
        ]

    def test_cannot_instantiate_abstract(self):
        """Test the interface itself is abstract."""
        with pytest.raises(TypeError):
            MutationHandler(branch_name='b', commit_message='m')


class TestLoadHandler:
    """Test dynamic handler loading."""

    def test_load_builtin(self):
        """Test loading a built-in handler with options."""
        handler = load_handler(
            f'{BUILTIN}:RemoveFilesHandler',
            {
                'branch_name': 'T-3/remove',
                'commit_message': 'T-3/Remove files',
                'file_patterns': ['*.bak'],
            },
        )

        assert isinstance(handler, RemoveFilesHandler)
        assert handler.file_patterns == ['*.bak']

    def test_malformed_path(self):
        """Test path without a class name."""
        with pytest.raises(ValueError):
            load_handler(BUILTIN)

    def test_missing_class(self):
        """Test unknown class name."""
        with pytest.raises(ImportError):
            load_handler(f'{BUILTIN}:DoesNotExist')

    def test_missing_module(self):
        """Test unknown module."""
        with pytest.raises(ImportError):
            load_handler('no_such_package.handlers:Handler')

    def test_not_a_handler(self):
        """Test a class that does not implement the interface."""
        with pytest.raises(TypeError):
            load_handler(f'{BUILTIN}:Path')


class TestMatchingFiles:
    """Test glob matching inside a working copy."""

    def test_never_enters_git_directory(self, working_copy):
        """Test files under .git are ignored."""
        assert matching_files(working_copy, ['**/*.tf']) == ['infra/main.tf', 'infra/vars.tf']


class TestRegexReplaceHandler:
    """Test regex substitution handler."""

    def make(self, **kwargs):
        options = {
            'search': r'us-east-1',
            'replace': 'us-west-2',
            'file_patterns': ['infra/*.tf'],
            'branch_name': 'T-4/region',
            'commit_message': 'T-4/Move region',
        }
        options.update(kwargs)
        return RegexReplaceHandler(**options)

    def test_apply(self, working_copy):
        """Test only changed files are reported."""
        handler = self.make()

        assert handler.is_applicable(working_copy)
        change_set = handler.apply(working_copy)

        assert change_set.paths == ['infra/main.tf']
        assert (working_copy.path / 'infra' / 'main.tf').read_text() == 'region = "us-west-2"\n'
        assert (working_copy.path / '.git' / 'config.tf').read_text() == 'region = "us-east-1"\n'

    def test_idempotent(self, working_copy):
        """Test a second run finds nothing to do."""
        handler = self.make()
        handler.apply(working_copy)

        assert not handler.is_applicable(working_copy)
        assert not handler.apply(working_copy)

    def test_requires_patterns(self):
        """Test file patterns are mandatory."""
        with pytest.raises(ValueError):
            self.make(file_patterns=[])


class TestRemoveFilesHandler:
    """Test file removal handler."""

    def test_apply(self, working_copy):
        """Test matching files are deleted and reported."""
        handler = RemoveFilesHandler(
            file_patterns=['infra/vars.tf'],
            branch_name='T-5/remove',
            commit_message='T-5/Remove vars',
        )

        assert handler.is_applicable(working_copy)
        assert handler.apply(working_copy).paths == ['infra/vars.tf']
        assert not (working_copy.path / 'infra' / 'vars.tf').exists()
        assert not handler.is_applicable(working_copy)


class TestEnsureLinesHandler:
    """Test line appending handler."""

    def make(self, **kwargs):
        options = {
            'path': '.gitignore',
            'lines': ['.terraform/', '*.tfstate'],
            'branch_name': 'T-6/gitignore',
            'commit_message': 'T-6/Ignore terraform state',
        }
        options.update(kwargs)
        return EnsureLinesHandler(**options)

    def test_creates_file(self, working_copy):
        """Test a missing file is created with every line."""
        handler = self.make(header='# terraform')

        assert handler.is_applicable(working_copy)
        assert handler.apply(working_copy).paths == ['.gitignore']
        assert (working_copy.path / '.gitignore').read_text() == (
            '# terraform\n.terraform/\n*.tfstate\n'
        )

    def test_appends_only_missing_lines(self, working_copy):
        """Test existing lines are not duplicated."""
        (working_copy.path / '.gitignore').write_text('*.tfstate')
        handler = self.make()

        handler.apply(working_copy)

        assert (working_copy.path / '.gitignore').read_text() == '*.tfstate\n.terraform/\n'
        assert not handler.is_applicable(working_copy)
        assert not handler.apply(working_copy)

    def test_stages_its_own_path(self):
        """Test the edited file is the staging pattern."""
        assert self.make().file_patterns == ['.gitignore']
