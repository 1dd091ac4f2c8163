'''
Shared fixtures for the Handlr tests.
'''

import shlex

import pytest
import xdg.BaseDirectory

import Handlr


@pytest.fixture
def xdg_home(tmp_path, monkeypatch):
  '''Point the XDG base directories into the temporary directory.'''
  data_home = tmp_path / 'data'
  config_home = tmp_path / 'config'
  (data_home / 'applications').mkdir(parents=True)
  config_home.mkdir()
  monkeypatch.setattr(xdg.BaseDirectory, 'xdg_data_home', str(data_home))
  monkeypatch.setattr(xdg.BaseDirectory, 'xdg_data_dirs', [str(data_home)])
  monkeypatch.setattr(xdg.BaseDirectory, 'xdg_config_home', str(config_home))
  return tmp_path


@pytest.fixture
def desktop_file(xdg_home):
  '''Factory for desktop files in the user's applications directory.'''

  def _write(file_name, name, exe, terminal=False, mime_types=(), categories=(), directory=None):
    lines = [
      '[Desktop Entry]',
      'Type=Application',
      'Name={}'.format(name),
      'Exec={}'.format(exe),
      'Terminal={}'.format('true' if terminal else 'false'),
    ]
    if mime_types:
      lines.append('MimeType={};'.format(';'.join(mime_types)))
    if categories:
      lines.append('Categories={};'.format(';'.join(categories)))
    if directory is None:
      directory = xdg_home / 'data' / 'applications'
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / file_name
    path.write_text('\n'.join(lines) + '\n')
    return str(path)

  return _write


@pytest.fixture
def commands(monkeypatch):
  '''Record commands instead of running them.'''
  calls = list()

  def fake_run_cmd(cmd, quiet=False, wait=False):
    calls.append((cmd, wait))

  monkeypatch.setattr(Handlr, 'run_cmd', fake_run_cmd)
  return calls


@pytest.fixture
def selector_script(tmp_path):
  '''
  Factory for selector commands that record their input and print the given
  choice.
  '''
  record = tmp_path / 'selector-input'

  def _make(choice):
    script = tmp_path / 'selector.sh'
    script.write_text('#!/bin/sh\ncat > "{}"\nprintf "%s\\n" "$1"\n'.format(record))
    script.chmod(0o755)
    return '{} {}'.format(shlex.quote(str(script)), shlex.quote(choice))

  _make.record = record
  return _make
