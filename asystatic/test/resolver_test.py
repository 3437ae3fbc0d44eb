import os
import asyncio

import pytest

from asystatic.errors import PathEscape, DirectoryDenied, NotFound, SymlinkDenied, SymlinkLoop
from asystatic.static.resolver import PathResolver, TargetKind, is_contained, get_local_path
from asystatic.test.conftest import HTML_BODY, requires_symlinks


def resolve(resolver, path):
	return asyncio.run(resolver.resolve(path))


def test_is_contained():
	assert is_contained('/srv/www', '/srv/www') is True
	assert is_contained('/srv/www', '/srv/www/a/b.html') is True
	assert is_contained('/srv/www', '/srv/wwwevil') is False
	assert is_contained('/srv/www', '/srv/wwwevil/secret.txt') is False
	assert is_contained('/srv/www', '/etc/passwd') is False

def test_get_local_path_normalizes():
	assert get_local_path('/srv/www', '/') == '/srv/www'
	assert get_local_path('/srv/www', '//a/./b/../c.html') == '/srv/www/a/c.html'
	assert get_local_path('/srv/www', '/../../etc/passwd') == '/etc/passwd'

def test_candidates_order(site):
	resolver = PathResolver(str(site), index='home.html')
	assert resolver.get_candidates('/x/y') == ['/x/y', '/x/y/home.html']

def test_file(site):
	target = resolve(PathResolver(str(site)), '/test.html')
	assert target.kind == TargetKind.FILE
	assert target.path == str(site / 'test.html')
	assert target.stat.st_size == len(HTML_BODY)
	assert target.status == 200

def test_directory_with_index(site):
	target = resolve(PathResolver(str(site)), '/sub')
	assert target.kind == TargetKind.FILE
	assert target.path == str(site / 'sub' / 'index.html')

def test_directory_without_index(site):
	target = resolve(PathResolver(str(site)), '/noindex/')
	assert target.kind == TargetKind.DIRECTORY
	assert target.path == str(site / 'noindex')
	assert isinstance(target.error, DirectoryDenied)
	assert target.status == 403

def test_root_uses_configured_index(site):
	target = resolve(PathResolver(str(site), index='test.html'), '/')
	assert target.kind == TargetKind.FILE
	assert target.path == str(site / 'test.html')

def test_root_without_index_is_directory(site):
	target = resolve(PathResolver(str(site)), '/')
	assert target.kind == TargetKind.DIRECTORY
	assert target.path == str(site)

def test_missing(site):
	target = resolve(PathResolver(str(site)), '/missing.html')
	assert target.kind == TargetKind.NOTFOUND
	assert type(target.error) is NotFound
	assert target.status == 404

def test_file_used_as_directory(site):
	target = resolve(PathResolver(str(site)), '/test.html/index.html')
	assert target.kind == TargetKind.NOTFOUND

def test_nul_byte_is_not_found(site):
	target = resolve(PathResolver(str(site)), '/test\x00.html')
	assert target.kind == TargetKind.NOTFOUND

@pytest.mark.parametrize('path', ['/../../etc/passwd', '/..', '/sub/../../wwwevil', '/../wwwevil/secret.txt'])
def test_escape_is_forbidden(site, path):
	target = resolve(PathResolver(str(site)), path)
	assert target.kind == TargetKind.FORBIDDEN
	assert isinstance(target.error, PathEscape)
	assert target.status == 403

def test_dotdot_inside_root(site):
	target = resolve(PathResolver(str(site)), '/sub/../test.html')
	assert target.kind == TargetKind.FILE
	assert target.path == str(site / 'test.html')


@requires_symlinks
def test_symlink_denied(site):
	os.symlink(str(site / 'test.html'), str(site / 'link.html'))
	target = resolve(PathResolver(str(site)), '/link.html')
	assert target.kind == TargetKind.NOTFOUND
	assert isinstance(target.error, SymlinkDenied)
	assert target.status == 404

@requires_symlinks
def test_symlink_followed(site):
	os.symlink('test.html', str(site / 'link.html'))
	links = []

	async def on_link(link, target):
		links.append((link, target))

	resolver = PathResolver(str(site), follow_symlinks=True, link_callback=on_link)
	target = resolve(resolver, '/link.html')
	assert target.kind == TargetKind.FILE
	assert target.path == str(site / 'test.html')
	assert links == [(str(site / 'link.html'), str(site / 'test.html'))]

@requires_symlinks
def test_symlink_chain(site):
	os.symlink('test.html', str(site / 'one.html'))
	os.symlink('one.html', str(site / 'two.html'))
	links = []

	async def on_link(link, target):
		links.append(os.path.basename(link))

	target = resolve(PathResolver(str(site), follow_symlinks=True, link_callback=on_link), '/two.html')
	assert target.kind == TargetKind.FILE
	assert target.path == str(site / 'test.html')
	assert links == ['two.html', 'one.html']

@requires_symlinks
def test_symlink_loop_is_bounded(site):
	os.symlink('b.html', str(site / 'a.html'))
	os.symlink('a.html', str(site / 'b.html'))
	target = resolve(PathResolver(str(site), follow_symlinks=True, max_symlink_depth=8), '/a.html')
	assert target.kind == TargetKind.NOTFOUND
	assert isinstance(target.error, SymlinkLoop)

@requires_symlinks
def test_dangling_symlink(site):
	os.symlink('nowhere.html', str(site / 'dangling.html'))
	target = resolve(PathResolver(str(site), follow_symlinks=True), '/dangling.html')
	assert target.kind == TargetKind.NOTFOUND

@requires_symlinks
def test_symlinked_directory_escaping_root(site):
	os.symlink(str(site.parent / 'wwwevil'), str(site / 'evil'))
	resolver = PathResolver(str(site))
	target = resolve(resolver, '/evil/secret.txt')
	assert target.kind == TargetKind.NOTFOUND
	assert isinstance(target.error, SymlinkDenied)

	target = resolve(PathResolver(str(site), follow_symlinks=True), '/evil/secret.txt')
	assert target.kind == TargetKind.FILE
