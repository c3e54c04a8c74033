"""
Test Classpath Assembly

Tests for directive parsing and the ClasspathAssembler.
"""

import pytest

from liveplug.domain.models import ClasspathEntry, ClasspathEntryKind, Language, PluginDescriptor
from liveplug.framework.configuration.models import BUNDLED_SUPPORT_LIBRARY
from liveplug.framework.plugin_management import ClasspathAssembler, parse_directives
from liveplug.framework.plugin_management.classpath import deduplicate
from liveplug.infrastructure.exceptions import DependencyResolutionError

from .fixtures.plugin_fixtures import build_wheel, write_plugin


def describe(root, language=Language.PYTHON_SCRIPT):
    return PluginDescriptor(root.name, root, language)


class TestDirectiveParsing:
    """Test directive comment parsing."""

    def test_all_directive_kinds_in_source_order(self):
        """Directives keep their source order, also across kinds."""
        directives = parse_directives(
            "# add-to-classpath libs/a\n"
            "import os\n"
            "#   add-dependency  tinydep==1.0  \n"
            "# add-to-classpath $PLUGIN_PATH/b\n"
            "# depends-on-plugin shared\n"
        )
        assert directives.classpath == ["libs/a", "$PLUGIN_PATH/b"]
        assert directives.dependencies == ["tinydep==1.0"]
        assert directives.plugins == ["shared"]
        assert directives.entries == [
            ("add-to-classpath", "libs/a"),
            ("add-dependency", "tinydep==1.0"),
            ("add-to-classpath", "$PLUGIN_PATH/b"),
            ("depends-on-plugin", "shared"),
        ]

    def test_ordinary_comments_are_not_directives(self):
        """Only the known directive keywords count."""
        directives = parse_directives("# add-something x\nx = 1  # add-to-classpath nope\n")
        assert directives.classpath == []
        assert directives.dependencies == []
        assert directives.plugins == []


class TestClasspathAssembler:
    """Test the classpath assembler."""

    def test_default_entries_in_order(self, runner_core, plugins_path, workspace):
        """Host libraries, support library, then the plugin's lib folder and its archives."""
        root = write_plugin(plugins_path, "p", {"plugin.py": "pass\n", "lib/helper.py": "X = 1\n"})
        (root / "lib" / "bundle.zip").write_bytes(build_wheel({"zipped.py": "Y = 2\n"}))

        host_lib = workspace / "host-lib"
        host_lib.mkdir()
        assembler = ClasspathAssembler([host_lib], BUNDLED_SUPPORT_LIBRARY, runner_core.resolver)
        classpath = assembler.assemble_classpath(describe(root))

        assert [e.kind for e in classpath] == [
            ClasspathEntryKind.HOST,
            ClasspathEntryKind.SUPPORT,
            ClasspathEntryKind.PLUGIN_LIB,
            ClasspathEntryKind.PLUGIN_LIB,
        ]
        assert classpath[0].path == host_lib
        assert classpath[1].path == BUNDLED_SUPPORT_LIBRARY
        assert classpath[2].path == root / "lib"
        assert classpath[3].path == root / "lib" / "bundle.zip"

    def test_local_classpath_directives(self, runner_core, plugins_path):
        """Relative paths, $PLUGIN_PATH and globs are expanded against the plugin root."""
        root = write_plugin(plugins_path, "p", {
            "plugin.py": (
                "# add-to-classpath extra\n"
                "# add-to-classpath $PLUGIN_PATH/jars/*.zip\n"
            ),
            "extra/mod.py": "X = 1\n",
        })
        (root / "jars").mkdir()
        (root / "jars" / "b.zip").write_bytes(build_wheel({"b.py": ""}))
        (root / "jars" / "a.zip").write_bytes(build_wheel({"a.py": ""}))

        classpath = runner_core.assembler.assemble_classpath(describe(root))
        declared = [e.path for e in classpath if e.kind is ClasspathEntryKind.DEPENDENCY]

        assert declared == [root / "extra", root / "jars" / "a.zip", root / "jars" / "b.zip"]

    def test_missing_local_path_fails(self, runner_core, plugins_path):
        """A declared path that does not exist is a dependency resolution error."""
        root = write_plugin(plugins_path, "p", {"plugin.py": "# add-to-classpath nowhere/lib\n"})

        with pytest.raises(DependencyResolutionError) as exc_info:
            runner_core.assembler.assemble_classpath(describe(root))

        assert exc_info.value.plugin_id == "p"
        assert exc_info.value.coordinate == "nowhere/lib"

    def test_remote_dependency_is_downloaded(self, runner_core, plugins_path, package_index, workspace):
        """add-dependency coordinates resolve to folders in the dependency cache."""
        package_index.add("tinydep", "1.0", build_wheel({"tinydep/__init__.py": "VALUE = 1\n"}))
        root = write_plugin(plugins_path, "p", {"plugin.py": "# add-dependency tinydep==1.0\n"})

        classpath = runner_core.assembler.assemble_classpath(describe(root))

        assert classpath[-1] == ClasspathEntry(workspace / "cache" / "tinydep-1.0", ClasspathEntryKind.DEPENDENCY)
        assert (classpath[-1].path / "tinydep" / "__init__.py").is_file()

    def test_depends_on_plugin(self, runner_core, plugins_path, workspace):
        """Another plugin's source root, or its compiled output when present, is appended."""
        shared = write_plugin(plugins_path, "shared", {"plugin.py": "pass\n"})
        root = write_plugin(plugins_path, "user", {"plugin.py": "# depends-on-plugin shared\n"})

        classpath = runner_core.assembler.assemble_classpath(describe(root))
        assert classpath[-1] == ClasspathEntry(shared, ClasspathEntryKind.PLUGIN_OUTPUT)

        older = workspace / "compiled" / "shared" / "build-00000000000000000001-a"
        newer = workspace / "compiled" / "shared" / "build-00000000000000000002-b"
        older.mkdir(parents=True)
        newer.mkdir()
        classpath = runner_core.assembler.assemble_classpath(describe(root))
        assert classpath[-1] == ClasspathEntry(newer, ClasspathEntryKind.PLUGIN_OUTPUT)

    def test_declared_entries_follow_source_order_across_kinds(self, runner_core, plugins_path, package_index,
                                                               workspace):
        """A local path declared after a dependency comes after it, and so shadows it."""
        package_index.add("tinydep", "1.0", build_wheel({"shared_name.py": "ORIGIN = 'dependency'\n"}))
        shared = write_plugin(plugins_path, "shared", {"plugin.py": "pass\n"})
        root = write_plugin(plugins_path, "p", {
            "plugin.py": (
                "# depends-on-plugin shared\n"
                "# add-dependency tinydep==1.0\n"
                "# add-to-classpath vendor\n"
            ),
            "vendor/shared_name.py": "ORIGIN = 'vendor'\n",
        })

        classpath = runner_core.assembler.assemble_classpath(describe(root))

        assert classpath[-3:] == [
            ClasspathEntry(shared, ClasspathEntryKind.PLUGIN_OUTPUT),
            ClasspathEntry(workspace / "cache" / "tinydep-1.0", ClasspathEntryKind.DEPENDENCY),
            ClasspathEntry(root / "vendor", ClasspathEntryKind.DEPENDENCY),
        ]

    def test_depends_on_unknown_plugin_fails(self, runner_core, plugins_path):
        """Referencing a plugin that is not discovered fails for the referencing plugin."""
        root = write_plugin(plugins_path, "user", {"plugin.py": "# depends-on-plugin ghost\n"})

        with pytest.raises(DependencyResolutionError):
            runner_core.assembler.assemble_classpath(describe(root))

    def test_duplicates_keep_first_occurrence(self, runner_core, plugins_path):
        """Declaring the lib folder again does not move it."""
        root = write_plugin(plugins_path, "p", {
            "plugin.py": "# add-to-classpath lib\n# add-to-classpath ./lib/\n",
            "lib/helper.py": "X = 1\n",
        })

        classpath = runner_core.assembler.assemble_classpath(describe(root))
        lib_entries = [e for e in classpath if e.path == root / "lib"]

        assert lib_entries == [ClasspathEntry(root / "lib", ClasspathEntryKind.PLUGIN_LIB)]

    def test_deduplicate_normalises_paths(self, workspace):
        """Paths are compared in normalised absolute form."""
        entries = [
            ClasspathEntry(workspace / "a", ClasspathEntryKind.HOST),
            ClasspathEntry(workspace / "b" / ".." / "a", ClasspathEntryKind.DEPENDENCY),
        ]
        assert deduplicate(entries) == entries[:1]
