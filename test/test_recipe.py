import shutil
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest import TestCase, skipIf

from rvn_fallback.aur.build import generate_build_script, package_metadata
from rvn_fallback.aur.recipe import (
    RecipeParser,
    ShellRecipeExtractor,
    TextRecipeExtractor,
    parse_array_items,
)
from rvn_fallback.models import BuildRecipe, map_dependency

HAS_BASH = shutil.which("bash") is not None

RECIPE = """# Maintainer: Someone <someone@example.com>
pkgname=hello-rvn
pkgver=2.12
pkgrel=3
pkgdesc="A friendly greeter"
url='https://www.gnu.org/software/hello/'
arch=('x86_64' 'aarch64')
license=('GPL-3.0-or-later')
depends=(
  'glibc>=2.30'
  'base-devel'  # comment
  "zlib"
)
makedepends=('autoconf' 'automake')
optdepends=('bash-completion: shell completion')
source=("https://ftp.gnu.org/gnu/hello/$pkgname-$pkgver.tar.gz")
sha256sums=('SKIP')

prepare() {
  touch "$MARKER_DIR/prepare-ran"
}

build() {
  touch "$MARKER_DIR/build-ran"
}

package() {
  touch "$MARKER_DIR/package-ran"
}
"""

MULTILINE_DEPENDS = """pkgname=multi
pkgver=1.0
pkgrel=1
depends=(
  'a'
  'b'
)
"""

APOSTROPHES = """pkgname=quotes
pkgver=1.0
pkgrel=1
depends=('a')
optdepends=("python: for the user's scripts" 'git'
            "it's 'quoted' & more")
"""


class MissingShellExtractor(ShellRecipeExtractor):
    def is_available(self) -> bool:
        return False


class TestMapDependency(TestCase):
    def test_strips_constraint_before_mapping(self) -> None:
        assert map_dependency("glibc>=2.30") == "musl"
        assert map_dependency("base-devel") == "gcc"
        assert map_dependency("python3=3.12") == "python"

    def test_unmapped_names_pass_through(self) -> None:
        assert map_dependency("zlib") == "zlib"
        assert map_dependency("openssl<4") == "openssl"
        assert map_dependency("bash-completion: shell completion") == "bash-completion"


class TestBuildRecipe(TestCase):
    def test_full_version(self) -> None:
        assert BuildRecipe(name="x", version="1.2").full_version == "1.2"
        assert BuildRecipe(name="x", version="1.2", release="3").full_version == "1.2-3"

    def test_is_complete(self) -> None:
        assert BuildRecipe(name="x", version="1").is_complete
        assert not BuildRecipe(name="x").is_complete
        assert not BuildRecipe().is_complete

    def test_mapped_depends(self) -> None:
        recipe = BuildRecipe(name="x", version="1", depends=["glibc>=2.30", "zlib"])
        assert recipe.mapped_depends == ["musl", "zlib"]


class TestArrayItems(TestCase):
    def test_quotes_and_comments(self) -> None:
        assert parse_array_items("'a b' \"c\" d # trailing\n e") == ["a b", "c", "d", "e"]

    def test_empty_items_dropped(self) -> None:
        assert parse_array_items("'' ''") == []

    def test_escaped_quote_between_single_quotes(self) -> None:
        items = parse_array_items("'python: for the user'\\''s scripts' 'git' ")
        assert items == ["python: for the user's scripts", "git"]

    def test_line_continuation(self) -> None:
        assert parse_array_items("a \\\n b") == ["a", "b"]


class TestTextExtractor(TestCase):
    def setUp(self) -> None:
        self.parser = RecipeParser([TextRecipeExtractor()])

    def test_multiline_depends(self) -> None:
        recipe = self.parser.parse_content(MULTILINE_DEPENDS)
        assert recipe.depends == ["a", "b"]
        assert recipe.full_version == "1.0-1"

    def test_full_recipe(self) -> None:
        recipe = self.parser.parse_content(RECIPE)
        assert recipe.name == "hello-rvn"
        assert recipe.version == "2.12"
        assert recipe.release == "3"
        assert recipe.description == "A friendly greeter"
        assert recipe.url == "https://www.gnu.org/software/hello/"
        assert recipe.arch == ["x86_64", "aarch64"]
        assert recipe.depends == ["glibc>=2.30", "base-devel", "zlib"]
        assert recipe.makedepends == ["autoconf", "automake"]
        assert recipe.optdepends == ["bash-completion: shell completion"]
        assert recipe.source == ["https://ftp.gnu.org/gnu/hello/hello-rvn-2.12.tar.gz"]
        assert recipe.sha256sums == ["SKIP"]

    def test_split_package_takes_first_name(self) -> None:
        recipe = self.parser.parse_content("pkgname=('foo' 'foo-docs')\npkgver=1\n")
        assert recipe.name == "foo"

    def test_unusable_recipe_is_incomplete(self) -> None:
        recipe = self.parser.parse_content("echo nothing to see here\n")
        assert recipe.name == ""
        assert not recipe.is_complete


class TestRecipeParser(TestCase):
    @skipIf(not HAS_BASH, "bash is not installed")
    def test_extractors_agree_on_quoted_items(self) -> None:
        shell = RecipeParser([ShellRecipeExtractor()]).parse_content(APOSTROPHES)
        text = RecipeParser([TextRecipeExtractor()]).parse_content(APOSTROPHES)
        assert shell.optdepends == [
            "python: for the user's scripts",
            "git",
            "it's 'quoted' & more",
        ]
        assert shell.depends == ["a"]
        assert text.optdepends == shell.optdepends
        assert text.depends == shell.depends

    def test_falls_back_without_interpreter(self) -> None:
        parser = RecipeParser([MissingShellExtractor(), TextRecipeExtractor()])
        recipe = parser.parse_content(MULTILINE_DEPENDS)
        assert recipe.name == "multi"
        assert recipe.depends == ["a", "b"]

    def test_falls_back_when_shell_is_missing(self) -> None:
        parser = RecipeParser([ShellRecipeExtractor(shell="rvn-no-such-shell"), TextRecipeExtractor()])
        recipe = parser.parse_content(MULTILINE_DEPENDS)
        assert recipe.name == "multi"
        assert recipe.depends == ["a", "b"]

    def test_parse_file(self) -> None:
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "PKGBUILD"
            path.write_text(MULTILINE_DEPENDS)
            recipe = RecipeParser([TextRecipeExtractor()]).parse(path)
        assert recipe.name == "multi"

    @skipIf(not HAS_BASH, "bash is not installed")
    def test_shell_multiline_depends(self) -> None:
        recipe = RecipeParser([ShellRecipeExtractor()]).parse_content(MULTILINE_DEPENDS)
        assert recipe.name == "multi"
        assert recipe.depends == ["a", "b"]

    @skipIf(not HAS_BASH, "bash is not installed")
    def test_shell_full_recipe(self) -> None:
        recipe = RecipeParser([ShellRecipeExtractor()]).parse_content(RECIPE)
        assert recipe.name == "hello-rvn"
        assert recipe.full_version == "2.12-3"
        assert recipe.description == "A friendly greeter"
        assert recipe.depends == ["glibc>=2.30", "base-devel", "zlib"]
        assert recipe.optdepends == ["bash-completion: shell completion"]
        assert recipe.source == ["https://ftp.gnu.org/gnu/hello/hello-rvn-2.12.tar.gz"]
        assert recipe.mapped_depends == ["musl", "gcc", "zlib"]

    @skipIf(not HAS_BASH, "bash is not installed")
    def test_functions_never_run(self) -> None:
        with TemporaryDirectory() as tmpdir:
            content = RECIPE.replace("$MARKER_DIR", tmpdir)
            recipe = RecipeParser([ShellRecipeExtractor()]).parse_content(content)
            assert recipe.name == "hello-rvn"
            assert list(Path(tmpdir).iterdir()) == []


class TestBuildScript(TestCase):
    def test_script_contents(self) -> None:
        recipe = BuildRecipe(name="hello", version="1.0", release="2", license=["MIT"])
        script = generate_build_script(recipe, Path("/src/hello"))
        assert script.startswith("#!/bin/bash\nset -e\n")
        assert "srcdir=/src/hello" in script
        assert "source ./PKGBUILD" in script
        assert "declare -f package_hello" in script
        assert '"$PKGDEST/"hello-1.0-2.rvn' in script
        assert "<< 'METADATA_EOF'" in script

    def test_metadata(self) -> None:
        recipe = BuildRecipe(name="hello", version="1.0", release="2", description="hi")
        assert package_metadata(recipe, "aur") == {
            "name": "hello",
            "version": "1.0-2",
            "description": "hi",
            "license": "unknown",
            "source": "aur",
        }
