#!/usr/bin/env python3
# -*- coding: utf-8 -*-

# Copyright (C) 2009-2016  Xyne
#
# This program is free software; you can redistribute it and/or
# modify it under the terms of the GNU General Public License
# (version 2) as published by the Free Software Foundation.
#
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program; if not, write to the Free Software
# Foundation, Inc., 51 Franklin Street, Fifth Floor, Boston, MA  02110-1301, USA.

'''
Handlr resolves the preferred handler of a file, URL or MIME-type, manages the
user's default applications and launches the resolved program. It follows the
freedesktop.org specifications where they apply:

    http://standards.freedesktop.org/mime-apps-spec/mime-apps-spec-latest.html
    http://standards.freedesktop.org/shared-mime-info-spec/shared-mime-info-spec-latest.html
    http://standards.freedesktop.org/basedir-spec/basedir-spec-latest.html
    http://standards.freedesktop.org/desktop-entry-spec/desktop-entry-spec-latest.html

On top of that it supports wildcard MIME-types in mimeapps.list (e.g.
"video/*"), an external selector for choosing among several handlers and
handlers that are matched against the argument with regular expressions.

Internally Handlr uses pyxdg:

    http://freedesktop.org/wiki/Software/pyxdg/
    http://pyxdg.readthedocs.org/en/latest/index.html

'''

import argparse
import collections
import fnmatch
import json
import logging
import mimetypes
import os
import re
import shlex
import socket
import stat
import subprocess
import sys
import tempfile
import tomllib
import urllib.parse

import xdg.BaseDirectory
import xdg.DesktopEntry
import xdg.Mime



################################### Globals ####################################

NAME = 'Handlr'
HANDLR_CONFIG_FILE = 'handlr.toml'
HANDLR_DEFAULT_ARGUMENTS_FILE = 'default_arguments.txt'

# Files and paths
MIMEAPPS_LIST_FILE = 'mimeapps.list'
APP_DIR = 'applications'
MIME_DIR = 'mime'
MIME_TYPES_FILE = 'types'
DESKTOP_EXTENSION = '.desktop'

# File sections
ADDED_ASSOCIATIONS_SECTION = 'Added Associations'
DEFAULT_APPLICATIONS_SECTION = 'Default Applications'

# Executables
EXE_FILE = 'file'
EXE_NOTIFY_SEND = 'notify-send'
NOTIFICATION_TIMEOUT = 10000

# URL scheme
SCHEME_FILE = 'file'

# MIME-types
MIMETYPE_SCHEME_FMT = 'x-scheme-handler/{}'
MIMETYPE_TERMINAL = MIMETYPE_SCHEME_FMT.format('terminal')
MIMETYPE_OCTET_STREAM = 'application/octet-stream'
MIMETYPE_ZEROSIZE = 'application/x-zerosize'

# http://standards.freedesktop.org/shared-mime-info-spec/shared-mime-info-spec-latest.html#idm140625828597376
MIMETYPE_BLOCKDEVICE= 'inode/blockdevice'
MIMETYPE_CHARDEVICE = 'inode/chardevice'
MIMETYPE_DIRECTORY = 'inode/directory'
MIMETYPE_FIFO = 'inode/fifo'
MIMETYPE_SOCKET = 'inode/socket'
MIMETYPE_SYMLINK = 'inode/symlink'

# Types that are not in the MIME databases but are commonly associated.
CUSTOM_MIMETYPES = (
  MIMETYPE_DIRECTORY,
  MIMETYPE_SCHEME_FMT.format('http'),
  MIMETYPE_SCHEME_FMT.format('https'),
  MIMETYPE_TERMINAL,
)

MIMETYPE_REGEX = re.compile(r'^[\w!#$&^.+*-]+/[\w!#$&^.+*-]+$')
WILDCARD = '*'

# Desktop files
FIELD_CODE_REGEX = re.compile(r'%[fFuU]')
FIELD_CODES = ('%f', '%F', '%u', '%U')
MULTIPLE_ARGUMENT_FIELD_CODES = ('%F', '%U')
TERMINAL_EMULATOR_CATEGORY = 'TerminalEmulator'

# Execution modes. Arguments are either paths and URLs to open or arbitrary
# arguments passed through to the program.
MODE_OPEN = 'open'
MODE_LAUNCH = 'launch'

# Settings
DEFAULT_SELECTOR = "rofi -dmenu -i -p 'Open With: '"
# Required by most xterm-compatible terminal emulators.
DEFAULT_TERM_EXEC_ARGS = '-e'
SETTINGS_TYPES = (
  ('enable_selector', bool),
  ('selector', str),
  ('term_exec_args', str),
  ('expand_wildcards', bool),
)
SETTINGS_HANDLERS_KEY = 'handlers'

# Command-line selector modes and the commands that use the selector.
SELECTOR_ENABLE = 'enable'
SELECTOR_DISABLE = 'disable'
SELECTOR_COMMANDS = ('open', 'launch', 'get')



#################################### Errors ####################################

class HandlrError(Exception):
  '''
  Base class of all errors that are reported to the user.
  '''
  pass



class NotFound(HandlrError):
  def __init__(self, what):
    self.what = what
    super().__init__('no handlers found for \'{}\''.format(what))



class Ambiguous(HandlrError):
  def __init__(self, path):
    self.path = path
    super().__init__('could not figure out the MIME-type of \'{}\''.format(path))



class BadEntry(HandlrError):
  def __init__(self, path):
    self.path = path
    super().__init__('malformed desktop entry at {}'.format(path))



class BadExec(HandlrError):
  def __init__(self, exe, path):
    self.exe = exe
    self.path = path
    super().__init__(
      'could not split exec command \'{}\' in desktop file \'{}\' into shell words'.format(exe, path)
    )



class BadCmd(HandlrError):
  def __init__(self, cmd):
    self.cmd = cmd
    super().__init__('could not split command \'{}\' into shell words'.format(cmd))



class SelectorError(HandlrError):
  def __init__(self, cmd):
    self.cmd = cmd
    super().__init__('error spawning selector process \'{}\''.format(cmd))



class Cancelled(HandlrError):
  '''
  The user closed the selector without choosing anything. This is not a fault
  and is never displayed.
  '''
  def __init__(self):
    super().__init__('selection cancelled')



class NoTerminal(HandlrError):
  def __init__(self):
    super().__init__(
      'please specify the default terminal with "{} set {} <desktop file>"'.format(
        NAME.lower(), MIMETYPE_TERMINAL
      )
    )



class InvalidMime(HandlrError):
  def __init__(self, mimetype):
    self.mimetype = mimetype
    super().__init__('bad MIME-type: {}'.format(mimetype))



class BadPath(HandlrError):
  def __init__(self, path):
    self.path = path
    super().__init__('bad path: {}'.format(path))



class ConfigError(HandlrError):
  def __init__(self, path, reason):
    self.path = path
    self.reason = reason
    super().__init__('failed to load {}: {}'.format(path, reason))



############################### Config Functions ###############################

def handlr_config_dir():
  '''
  The directory of Handlr's own configuration files.
  '''
  return os.path.join(xdg.BaseDirectory.xdg_config_home, NAME.lower())



def default_config_path():
  return os.path.join(handlr_config_dir(), HANDLR_CONFIG_FILE)



def default_arguments_path():
  '''
  The path to a plaintext file containing shell-parsable arguments to add to
  Handlr before argument parsing.
  '''
  return os.path.join(handlr_config_dir(), HANDLR_DEFAULT_ARGUMENTS_FILE)



def default_arguments():
  '''
  Load default arguments from default_arguments_path().
  '''
  path = default_arguments_path()
  logging.debug('loading arguments from {}'.format(path))
  try:
    with open(path, 'r') as f:
      return shlex.split(f.readline())
  except FileNotFoundError:
    return None



def user_mimeapps_path():
  '''
  Get the user's association file.
  '''
  return os.path.join(xdg.BaseDirectory.xdg_config_home, MIMEAPPS_LIST_FILE)



def toml_value(value):
  '''
  Format a boolean or string as a TOML value. JSON strings are valid TOML basic
  strings.
  '''
  if isinstance(value, bool):
    return 'true' if value else 'false'
  return json.dumps(value)



def save_default_settings(path):
  '''
  Write a configuration file with the default settings.
  '''
  logging.debug('creating {}'.format(path))
  os.makedirs(os.path.dirname(path), exist_ok=True)
  with open(path, 'w') as f:
    f.write('''enable_selector = {enable_selector}
selector = {selector}
term_exec_args = {term_exec_args}
expand_wildcards = {expand_wildcards}

# Regular expression handlers are checked before any MIME-type association when
# opening paths and URLs. The first handler with a matching expression is used.
#
# [[handlers]]
# exec = "freetube %u"
# terminal = false
# regexes = ['(https://)?(www\\.)?youtu(be\\.com|\\.be)/*']
'''.format(
      enable_selector=toml_value(False),
      selector=toml_value(DEFAULT_SELECTOR),
      term_exec_args=toml_value(DEFAULT_TERM_EXEC_ARGS),
      expand_wildcards=toml_value(False),
    ))



def parse_settings(data, path='<settings>'):
  '''
  Convert the table loaded from the configuration file to a Settings object.
  Values of the wrong type raise ConfigError.
  '''
  kwargs = dict()
  for key, typ in SETTINGS_TYPES:
    if key in data:
      value = data[key]
      if not isinstance(value, typ):
        raise ConfigError(path, '"{}" must be a {}'.format(key, typ.__name__))
      kwargs[key] = value
  # An empty string disables the extra terminal arguments.
  if 'term_exec_args' in kwargs and not kwargs['term_exec_args'].strip():
    kwargs['term_exec_args'] = None

  known_keys = set(k for k, _ in SETTINGS_TYPES)
  known_keys.add(SETTINGS_HANDLERS_KEY)
  for key in data:
    if key not in known_keys:
      logging.warning('{}: ignoring unknown setting "{}"'.format(path, key))

  handlers = list()
  tables = data.get(SETTINGS_HANDLERS_KEY, list())
  if not isinstance(tables, list):
    raise ConfigError(path, '"{}" must be an array of tables'.format(SETTINGS_HANDLERS_KEY))
  for i, table in enumerate(tables):
    if not isinstance(table, dict):
      raise ConfigError(path, 'handler {} is not a table'.format(i))
    exe = table.get('exec')
    terminal = table.get('terminal', False)
    regexes = table.get('regexes', list())
    if not isinstance(exe, str) or not exe.strip():
      raise ConfigError(path, 'handler {} needs a non-empty "exec" string'.format(i))
    if not isinstance(terminal, bool):
      raise ConfigError(path, '"terminal" of handler {} must be a bool'.format(i))
    if not isinstance(regexes, list) \
    or not all(isinstance(r, str) for r in regexes):
      raise ConfigError(path, '"regexes" of handler {} must be a list of strings'.format(i))
    try:
      handlers.append(RegexHandler(exe, regexes, terminal=terminal))
    except re.error as e:
      raise ConfigError(path, 'invalid regex in handler {}: {}'.format(i, e))

  return Settings(handlers=handlers, **kwargs)



def load_settings(path=None):
  '''
  Load the configuration file. It is created with the default settings if it
  does not exist.
  '''
  if path is None:
    path = default_config_path()
  try:
    with open(path, 'rb') as f:
      logging.debug('loading {}'.format(path))
      data = tomllib.load(f)
  except FileNotFoundError:
    logging.debug('{} does not exist'.format(path))
    try:
      save_default_settings(path)
    except OSError as e:
      logging.warning('failed to create {}: {}'.format(path, e))
    return Settings()
  except (OSError, tomllib.TOMLDecodeError) as e:
    raise ConfigError(path, e)
  return parse_settings(data, path=path)



################################### Settings ###################################

class Settings(object):
  '''
  Handlr's own configuration.

  enable_selector:
    Run the selector when more than one handler is set for a MIME-type.

  selector:
    The selector command. It receives the handler names on STDIN and prints
    the chosen one.

  term_exec_args:
    Extra arguments appended to the terminal emulator command, or None.

  expand_wildcards:
    Expand wildcard MIME-types to all matching known MIME-types when setting
    or adding handlers instead of storing the wildcard.

  handlers:
    RegexHandlers in order of precedence.
  '''
  def __init__(
    self,
    enable_selector=False,
    selector=DEFAULT_SELECTOR,
    term_exec_args=DEFAULT_TERM_EXEC_ARGS,
    expand_wildcards=False,
    handlers=None,
  ):
    self.enable_selector = enable_selector
    self.selector = selector
    self.term_exec_args = term_exec_args
    self.expand_wildcards = expand_wildcards
    self.handlers = list(handlers) if handlers else list()



  def get_regex_handler(self, arg):
    '''
    Get the first regex handler that matches the argument.
    '''
    for handler in self.handlers:
      if handler.is_match(arg):
        logging.debug('{} matched regex handler {}'.format(arg, handler))
        return handler
    raise NotFound(arg)



  def override_selector(self, selector=None, enable=False, disable=False):
    '''
    Apply selector options from the command line.
    '''
    if selector:
      self.selector = selector
    self.enable_selector = (self.enable_selector or enable) and not disable



################################## Debugging ###################################

def logging_debug_and_yield(msg, lst):
  '''
  Pretty-print a debugging message followed by a list of arguments. This is an
  iterator so that it can be used to log lists with "yield from" without
  building an intermediate list or tuple.
  '''
  for item in lst:
    logging.debug('{}: {}'.format(msg, item))
    yield item



############################## Generic Functions ###############################

def quote_cmd(cmd):
  '''
  Quote a command for shell parsing (used for command-line output).
  '''
  return ' '.join(shlex.quote(w) for w in cmd)



def split_cmd(cmd):
  '''
  Split a command string into words. Raises BadCmd if the string cannot be
  split or is empty.
  '''
  try:
    words = shlex.split(cmd)
  except ValueError:
    raise BadCmd(cmd)
  if not words:
    raise BadCmd(cmd)
  return words



def run_cmd(cmd, quiet=False, wait=False):
  '''
  Start a command. Unless wait is True, do not wait for it to finish.
  '''
  if quiet:
    kwargs = {
      'stdout' : subprocess.DEVNULL,
      'stderr' : subprocess.DEVNULL,
    }
  else:
    kwargs = dict()
  logging.debug(quote_cmd(cmd))
  p = subprocess.Popen(cmd, close_fds=True, **kwargs)
  if wait:
    p.wait()
  return p



def notify(title, msg):
  '''
  Display a desktop notification. This is used to report problems when there
  is no terminal to print them to.
  '''
  cmd = [EXE_NOTIFY_SEND, '-t', str(NOTIFICATION_TIMEOUT), title, msg]
  try:
    run_cmd(cmd, quiet=True)
  except OSError as e:
    logging.warning('failed to send notification: {}'.format(e))



def which(cmd):
  '''
  Emulate the system command "which".
  '''
  if not cmd:
    return None
  elif os.path.isabs(cmd):
    return cmd
  else:
    for p in os.get_exec_path():
      fpath = os.path.join(p, cmd)
      logging.debug('which: {}'.format(fpath))
      if os.path.isfile(fpath) and os.access(fpath, os.X_OK):
        return fpath
    else:
      return None



def unique_items(f):
  '''
  Function decorator to remove duplicates from iterable functions.
  '''
  def g(*args, **kwargs):
    seen = set()
    for x in f(*args, **kwargs):
      if x in seen:
        continue
      else:
        yield x
        seen.add(x)
  return g



def ensure_path(arg):
  '''
  Ensure that the argument is a path. If it is a URL, only the path part will
  be returned.
  '''
  parsed_url = urllib.parse.urlparse(arg)
  # Not a URL. Return the argument directly.
  if not (parsed_url.scheme or parsed_url.netloc):
    return arg

  # "file" URL on localhost
  if parsed_url.scheme == SCHEME_FILE:
    # Keep this here to avoid getfqdn calls for non-"file" URLs, which have been
    # reported to be slow on some systems.
    localhost = socket.getfqdn(socket.gethostname())
    hostname = parsed_url.hostname if parsed_url.hostname else 'localhost'
    remotehost = socket.getfqdn(hostname)
    if hostname == 'localhost' or remotehost == localhost:
      return urllib.parse.unquote(parsed_url.path)

  return None



def ensure_desktop_name(arg):
  '''
  Add the desktop extension to a desktop file name if it is missing. Paths are
  returned unchanged.
  '''
  if os.sep in arg or arg.endswith(DESKTOP_EXTENSION):
    return arg
  return arg + DESKTOP_EXTENSION



# TODO
# Maybe add optional color output.
def print_collection(a_by_b, out=None, order=None, sort_a=False, sort_b=False):
  '''
  Print a collection to the given file object (STDOUT by default).
  '''
  if out is None:
    out = sys.stdout
  if not order:
    if sort_a:
      order = sorted(a_by_b)
    else:
      order = a_by_b.keys()

  for a in order:
    print(a, file=out)
    try:
      bs = a_by_b[a]
    except KeyError:
      continue
    else:
      if sort_b:
        bs = sorted(bs)
      for b in bs:
        print('  {}'.format(b), file=out)



################################## MIME-types ##################################

def normalize_mimetype(mimetype):
  '''
  Lowercase a MIME-type string and strip its parameters. Raises InvalidMime if
  the result is not of the form "type/subtype". The subtype may contain
  wildcards.
  '''
  normalized = mimetype.split(';', 1)[0].strip().lower()
  if not MIMETYPE_REGEX.match(normalized):
    raise InvalidMime(mimetype)
  return normalized



def is_wildcard(mimetype):
  return WILDCARD in mimetype



def wildcard_match(pattern, mimetype):
  '''
  Shell-style matching of a (possibly wildcard) MIME-type pattern.
  '''
  return fnmatch.fnmatchcase(mimetype, pattern)



def mimetype_from_xdg(mt):
  if mt:
    return '{}/{}'.format(mt.media, mt.subtype)
  return None



def file_mimetype_by_name(path):
  '''
  Attempt to determine the MIME-type of a file by name.
  '''
  mimetype = mimetype_from_xdg(xdg.Mime.get_type_by_name(path))
  if not mimetype:
    mimetype = mimetypes.guess_type(path)[0]
  return mimetype



def file_mimetype_by_content(path):
  '''
  Attempt to determine the MIME-type of a regular (existing) file by content.
  '''
  mimetype = mimetype_from_xdg(xdg.Mime.get_type_by_contents(path))
  if not mimetype and which(EXE_FILE):
    cmd = [EXE_FILE, '--brief', '--mime-type', path]
    logging.debug(quote_cmd(cmd))
    cp = subprocess.run(cmd, stdout=subprocess.PIPE)
    if cp.returncode == 0:
      mimetype = cp.stdout.strip().decode()
  return mimetype



def acceptable_mimetype(mimetype):
  '''
  The generic binary type tells us nothing about the file.
  '''
  return bool(mimetype) and mimetype != MIMETYPE_OCTET_STREAM



def mimetype_from_path(path, follow_symlinks=True):
  '''
  Determine the MIME-type of a path. The name is checked before the content.
  Raises Ambiguous if no useful MIME-type is found.
  '''
  try:
    if follow_symlinks:
      st = os.stat(path)
    else:
      st = os.lstat(path)
  except FileNotFoundError:
    mimetype = file_mimetype_by_name(path)
    if acceptable_mimetype(mimetype):
      return mimetype
    raise Ambiguous(path)

  mode = st.st_mode
  if stat.S_ISBLK(mode):
    return MIMETYPE_BLOCKDEVICE
  elif stat.S_ISCHR(mode):
    return MIMETYPE_CHARDEVICE
  elif stat.S_ISDIR(mode):
    return MIMETYPE_DIRECTORY
  elif stat.S_ISFIFO(mode):
    return MIMETYPE_FIFO
  elif stat.S_ISSOCK(mode):
    return MIMETYPE_SOCKET
  elif stat.S_ISLNK(mode):
    return MIMETYPE_SYMLINK

  mimetype = file_mimetype_by_name(path)
  if acceptable_mimetype(mimetype):
    return mimetype
  if st.st_size == 0:
    return MIMETYPE_ZEROSIZE
  mimetype = file_mimetype_by_content(path)
  if acceptable_mimetype(mimetype):
    return mimetype
  raise Ambiguous(path)



def arg_to_mimetype(arg):
  '''
  Determine the MIME-type of a path or URL given on the command line.
  '''
  parsed_url = urllib.parse.urlparse(arg)
  scheme = parsed_url.scheme
  if scheme and scheme != SCHEME_FILE:
    return MIMETYPE_SCHEME_FMT.format(scheme.lower())
  path = ensure_path(arg)
  if not path:
    raise BadPath(arg)
  return mimetype_from_path(path)



def mime_or_extension(arg):
  '''
  Parse a MIME-type or a file extension such as ".pdf" given by the user.
  '''
  if arg.startswith('.'):
    if arg == '.':
      raise InvalidMime(arg)
    # Classify the extension through a dummy file name.
    mimetype = file_mimetype_by_name('file' + arg)
    if not acceptable_mimetype(mimetype):
      raise Ambiguous(arg)
    return mimetype
  return normalize_mimetype(arg)



def known_mimetypes():
  '''
  Return a set of known MIME-types from the shared MIME-info database, the
  mimetypes module and a few types that are not in either.
  '''
  seen = set(CUSTOM_MIMETYPES)
  for path in xdg.BaseDirectory.load_data_paths(MIME_DIR, MIME_TYPES_FILE):
    logging.debug('loading MIME-types from {}'.format(path))
    with open(path, 'r') as f:
      seen.update(line.strip() for line in f if line.strip())
  mimetypes.init()
  seen.update(mimetypes.types_map.values())
  seen.update(mimetypes.common_types.values())
  return seen



################################ Path Functions ################################

def desktop_directories(user=True, system=True):
  '''
  Iterate over desktop entry directories:

      https://specifications.freedesktop.org/menu-spec/menu-spec-latest.html#adding-items

  '''
  my_name = 'desktop_directories'
  data_home = xdg.BaseDirectory.xdg_data_home

  if user:
    yield from logging_debug_and_yield(
      my_name,
      (os.path.join(data_home, APP_DIR),)
    )

  if system:
    yield from logging_debug_and_yield(
      my_name,
      (
        os.path.join(d, APP_DIR)
        for d in xdg.BaseDirectory.xdg_data_dirs
        if d != data_home
      )
    )



def desktop_paths(user=True, system=True):
  '''
  Iterate over all desktop files. Files in earlier directories shadow files
  with the same name in later ones.
  '''
  seen = set()
  for dpath in desktop_directories(user=user, system=system):
    try:
      names = sorted(os.listdir(dpath))
    except (FileNotFoundError, NotADirectoryError):
      continue
    for name in names:
      if name.endswith(DESKTOP_EXTENSION) and name not in seen:
        seen.add(name)
        yield os.path.join(dpath, name)



def find_desktop_path(name):
  '''
  Find the first desktop file with the given name.
  '''
  for dpath in desktop_directories():
    path = os.path.join(dpath, name)
    if os.path.isfile(path):
      return path
  return None



################################ Desktop files #################################

class DesktopEntry(collections.namedtuple(
  'DesktopEntry',
  ('name', 'exe', 'file_name', 'terminal', 'mime_types', 'categories')
)):
  '''
  The parts of a desktop entry that are needed to open things with it.

  name:
    The (localized) "Name" value.

  exe:
    The "Exec" value, i.e. the command template.

  file_name:
    The name of the desktop file, which identifies the entry.

  terminal:
    True if the program must be run in a terminal.

  mime_types:
    The MIME-types that the entry declares.

  categories:
    The menu categories of the entry.
  '''
  __slots__ = ()



  def is_terminal_emulator(self):
    return TERMINAL_EMULATOR_CATEGORY in self.categories



  def supports_multiple(self):
    '''
    True if the command accepts several files or URLs at once.
    '''
    return any(c in self.exe for c in MULTIPLE_ARGUMENT_FIELD_CODES)



  def get_cmd(self, config, args):
    '''
    Interpolate the command template with the arguments. If the program needs
    a terminal but STDOUT is not one, the command is wrapped in a new terminal
    emulator.
    '''
    cmd = expand_exec(self.exe, args, path=self.file_name)
    if self.terminal and not config.terminal_output:
      cmd = config.terminal() + cmd
    return cmd



  def exec(self, config, mode, args):
    '''
    Run the command with the given arguments. Commands that only accept a
    single file are run once per argument when opening paths.
    '''
    args = list(args)
    if not args:
      self.exec_inner(config, list())
    elif self.supports_multiple() or mode == MODE_LAUNCH:
      self.exec_inner(config, args)
    else:
      for arg in args:
        self.exec_inner(config, [arg])



  def exec_inner(self, config, args):
    cmd = self.get_cmd(config, args)
    # Terminal programs run in the current terminal until they exit.
    if self.terminal and config.terminal_output:
      run_cmd(cmd, wait=True)
    else:
      run_cmd(cmd, quiet=True)



def parse_desktop_entry(path):
  '''
  Load a desktop entry. Raises BadEntry if the file cannot be parsed or lacks a
  name or command.
  '''
  de = xdg.DesktopEntry.DesktopEntry()
  # This is necessary because the filename attribute is only set in the "new"
  # method for some reason.
  de.filename = path

  logging.debug('parsing {}'.format(path))
  try:
    # This will raise ParsingError if the file is not found.
    de.parse(path)
  except xdg.DesktopEntry.ParsingError as e:
    logging.debug('error loading {}: {}'.format(path, e))
    raise BadEntry(path)

  entry = DesktopEntry(
    name=de.getName(),
    exe=de.getExec(),
    file_name=os.path.basename(path),
    terminal=bool(de.getTerminal()),
    mime_types=tuple(m.strip().lower() for m in de.get('MimeType', list=True) if m.strip()),
    categories=tuple(c.strip() for c in de.get('Categories', list=True) if c.strip()),
  )
  if not entry.name or not entry.exe:
    raise BadEntry(path)
  return entry



def fake_desktop_entry(exe, terminal=False):
  '''
  Make a desktop entry with only a command and the terminal flag.
  '''
  return DesktopEntry(
    name='',
    exe=exe,
    file_name='',
    terminal=terminal,
    mime_types=tuple(),
    categories=tuple(),
  )



def expand_exec(exe, args, path=''):
  '''
  Interpolate the file and URL field codes of an Exec value. A word that is a
  field code is replaced by all of the arguments. Field codes inside a larger
  word are replaced by the arguments joined with spaces. If there are no field
  codes then the arguments are appended.
  '''
  try:
    words = shlex.split(exe)
  except ValueError:
    raise BadExec(exe, path)
  if not words:
    raise BadExec(exe, path)

  args = list(args)
  if not FIELD_CODE_REGEX.search(exe):
    return words + args

  joined_args = ' '.join(args)
  cmd = list()
  for word in words:
    if word in FIELD_CODES:
      cmd.extend(args)
    elif FIELD_CODE_REGEX.search(word):
      cmd.append(FIELD_CODE_REGEX.sub(lambda m: joined_args, word))
    else:
      cmd.append(word)
  if not cmd:
    raise BadExec(exe, path)
  return cmd



################################### Handlers ###################################

class DesktopHandler(object):
  '''
  A handler defined by a desktop file. The name is either the name of a file
  in one of the applications directories or a path to a desktop file.
  '''
  def __init__(self, name):
    self.name = name



  @classmethod
  def resolve(cls, name):
    '''
    Create a handler after checking that its desktop entry is valid.
    '''
    handler = cls(name)
    handler.get_entry()
    return handler



  def __eq__(self, other):
    return isinstance(other, DesktopHandler) and self.name == other.name



  def __hash__(self):
    return hash((DesktopHandler, self.name))



  def __str__(self):
    return self.name



  def __repr__(self):
    return 'DesktopHandler({!r})'.format(self.name)



  def get_path(self):
    if os.sep in self.name:
      if os.path.isfile(self.name):
        return self.name
    else:
      path = find_desktop_path(self.name)
      if path:
        return path
    raise NotFound(self.name)



  def get_entry(self):
    return parse_desktop_entry(self.get_path())



  def open(self, config, args):
    self.get_entry().exec(config, MODE_OPEN, args)



  def launch(self, config, args):
    self.get_entry().exec(config, MODE_LAUNCH, args)



class RegexHandler(object):
  '''
  A command from the configuration file that opens any argument matching one of
  its regular expressions. Regex handlers are never saved to mimeapps.list.
  '''
  def __init__(self, exe, regexes, terminal=False):
    self.exe = exe
    self.terminal = terminal
    self.regexes = tuple(re.compile(r) for r in regexes)



  def key(self):
    return (self.exe, self.terminal, tuple(r.pattern for r in self.regexes))



  def __eq__(self, other):
    return isinstance(other, RegexHandler) and self.key() == other.key()



  def __hash__(self):
    return hash((RegexHandler,) + self.key())



  def __str__(self):
    return self.exe



  def __repr__(self):
    return 'RegexHandler({!r}, {!r}, terminal={!r})'.format(
      self.exe, [r.pattern for r in self.regexes], self.terminal
    )



  def is_match(self, arg):
    return any(r.search(arg) for r in self.regexes)



  def get_entry(self):
    return fake_desktop_entry(self.exe, self.terminal)



  def open(self, config, args):
    self.get_entry().exec(config, MODE_OPEN, args)



  def launch(self, config, args):
    self.get_entry().exec(config, MODE_LAUNCH, args)



################################### Selector ###################################

def select(selector, names):
  '''
  Let the user choose one of the names with the selector command. The names
  are written to its STDIN, one per line, and the choice is read from its
  STDOUT. Raises Cancelled if nothing was chosen.
  '''
  cmd = split_cmd(selector)
  logging.debug(quote_cmd(cmd))
  try:
    p = subprocess.Popen(
      cmd,
      stdin=subprocess.PIPE,
      stdout=subprocess.PIPE,
      universal_newlines=True,
    )
    output, _ = p.communicate('\n'.join(names))
  except OSError as e:
    logging.debug('selector failed: {}'.format(e))
    raise SelectorError(selector)
  output = output.rstrip()
  if not output:
    raise Cancelled()
  return output



############################ mimeapps.list parsing #############################

@unique_items
def parse_handler_list(value, resolve=False):
  '''
  Parse a semicolon-separated list of desktop file names. Empty and malformed
  names are dropped, as are names that do not resolve to a valid desktop entry
  if resolve is True.
  '''
  for name in value.split(';'):
    name = name.strip()
    if not name:
      continue
    elif not name.endswith(DESKTOP_EXTENSION):
      logging.warning('ignoring malformed handler "{}"'.format(name))
      continue
    handler = DesktopHandler(name)
    if resolve:
      try:
        handler.get_entry()
      except HandlrError as e:
        logging.debug('ignoring handler {}: {}'.format(name, e))
        continue
    yield handler



def format_handler_list(handlers):
  '''
  Format a list of handlers for mimeapps.list. Duplicates are omitted.
  '''
  names = list()
  for h in handlers:
    if str(h) not in names:
      names.append(str(h))
  return ''.join('{};'.format(n) for n in names)



def parse_associations(lines):
  '''
  Parse lines of an association file into a dictionary of sections, each
  mapping keys to raw values.
  '''
  section = None
  associations = collections.OrderedDict()
  for line in lines:
    line = line.strip()
    if not line or line[0] == '#':
      continue
    elif line[0] == '[' and line[-1] == ']':
      section = line[1:-1]
      associations.setdefault(section, collections.OrderedDict())
    else:
      try:
        key, value = line.split('=',1)
      except ValueError:
        logging.warning('failed to parse line [{}]'.format(line))
        continue
      if section is None:
        logging.warning('ignoring line outside of a section [{}]'.format(line))
        continue
      associations[section][key.strip()] = value.strip()
  return associations



def format_section(section, entries):
  lines = ['[{}]'.format(section)]
  lines.extend('{}={}'.format(k, v) for k, v in sorted(entries.items()))
  return '\n'.join(lines) + '\n'



################################### MimeApps ###################################

class MimeApps(object):
  '''
  The user's associations in mimeapps.list.

  default_apps:
    Dictionary mapping MIME-types to lists of handlers. The first handler is
    the default. This is what set, add, unset and remove modify.

  added_associations:
    Dictionary mapping MIME-types to lists of handlers. This is only read.

  other_sections:
    Any other sections in the file, kept as they are.
  '''
  def __init__(
    self,
    default_apps=None,
    added_associations=None,
    other_sections=None,
    path=None,
  ):
    self.default_apps = dict(default_apps) if default_apps else dict()
    self.added_associations = dict(added_associations) if added_associations else dict()
    self.other_sections = collections.OrderedDict(other_sections) if other_sections else collections.OrderedDict()
    self.path = path



  @classmethod
  def parse(cls, lines, path=None, resolve=False):
    '''
    Parse the lines of an association file.
    '''
    sections = parse_associations(lines)
    maps = dict()
    for section in (ADDED_ASSOCIATIONS_SECTION, DEFAULT_APPLICATIONS_SECTION):
      maps[section] = dict(
        (k.lower(), list(parse_handler_list(v, resolve=resolve)))
        for k, v in sections.pop(section, dict()).items()
      )
    mime_apps = cls(
      default_apps=maps[DEFAULT_APPLICATIONS_SECTION],
      added_associations=maps[ADDED_ASSOCIATIONS_SECTION],
      other_sections=sections,
      path=path,
    )
    # Entries can be left empty if all of their handlers are invalid.
    mime_apps.remove_empty_associations()
    return mime_apps



  @classmethod
  def read(cls, path=None, resolve=True):
    '''
    Load the association file, creating an empty one if it does not exist.
    '''
    if path is None:
      path = user_mimeapps_path()
    if not os.path.exists(path):
      logging.debug('creating {}'.format(path))
      os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
      open(path, 'a').close()
    with open(path, 'r') as f:
      logging.debug('loading {}'.format(path))
      return cls.parse(f, path=path, resolve=resolve)



  def remove_empty_associations(self):
    '''
    Remove empty entries and sections.
    '''
    for assocs in (self.default_apps, self.added_associations):
      for key in [k for k, v in assocs.items() if not v]:
        del assocs[key]
    for section in [s for s, e in self.other_sections.items() if not e]:
      del self.other_sections[section]



  def serialize(self):
    '''
    Format the associations as the content of an association file. Keys are
    sorted and empty sections are omitted.
    '''
    self.remove_empty_associations()
    sections = [
      (section, dict((k, format_handler_list(v)) for k, v in assocs.items()))
      for section, assocs in (
        (ADDED_ASSOCIATIONS_SECTION, self.added_associations),
        (DEFAULT_APPLICATIONS_SECTION, self.default_apps),
      )
    ]
    sections.extend(self.other_sections.items())
    return '\n'.join(
      format_section(section, entries)
      for section, entries in sections
      if entries
    )



  def save(self, path=None):
    '''
    Save the associations. The file is replaced atomically.
    '''
    if path is None:
      path = self.path
    if not path:
      logging.debug('no association file to save to')
      return
    content = self.serialize()
    dpath = os.path.dirname(path) or '.'
    os.makedirs(dpath, exist_ok=True)
    try:
      mode = stat.S_IMODE(os.stat(path).st_mode)
    except FileNotFoundError:
      mode = 0o644
    logging.debug('saving {}'.format(path))
    fd, tmp_path = tempfile.mkstemp(dir=dpath, prefix='.{}.'.format(os.path.basename(path)))
    try:
      with os.fdopen(fd, 'w') as f:
        f.write(content)
      os.chmod(tmp_path, mode)
      os.replace(tmp_path, path)
    except OSError:
      os.unlink(tmp_path)
      raise



  def matching_mimetypes(self, mimetype, expand_wildcards=False):
    '''
    The MIME-types that an association with the given MIME-type is stored
    under.
    '''
    if expand_wildcards and is_wildcard(mimetype):
      matches = sorted(
        m for m in known_mimetypes()
        if not is_wildcard(m) and wildcard_match(mimetype, m)
      )
      if not matches:
        logging.warning('no known MIME-types match {}'.format(mimetype))
      return matches
    return [mimetype]



  def add_handler(self, mimetype, handler, expand_wildcards=False):
    '''
    Append a handler to the default applications of a MIME-type.
    '''
    for m in self.matching_mimetypes(mimetype, expand_wildcards=expand_wildcards):
      self.default_apps.setdefault(m, list()).append(handler)



  def set_handler(self, mimetype, handler, expand_wildcards=False):
    '''
    Make a handler the only default application of a MIME-type.
    '''
    for m in self.matching_mimetypes(mimetype, expand_wildcards=expand_wildcards):
      self.default_apps[m] = [handler]



  def stored_mimetypes(self, mimetype):
    '''
    The keys of the default applications that an unset or remove operation on
    the given MIME-type applies to. A literal key is always preferred. Without
    one, a wildcard applies to all keys that it matches.
    '''
    if mimetype in self.default_apps:
      return [mimetype]
    elif is_wildcard(mimetype):
      return sorted(k for k in self.default_apps if wildcard_match(mimetype, k))
    return list()



  def unset_handler(self, mimetype):
    '''
    Remove all default applications of a MIME-type. Returns True if anything
    was removed.
    '''
    keys = self.stored_mimetypes(mimetype)
    for k in keys:
      del self.default_apps[k]
    return bool(keys)



  def remove_handler(self, mimetype, handler):
    '''
    Remove the first occurrence of a handler from the default applications of
    a MIME-type. Returns True if anything was removed.
    '''
    removed = False
    for k in self.stored_mimetypes(mimetype):
      handlers = self.default_apps[k]
      if handler in handlers:
        handlers.remove(handler)
        removed = True
    return removed



  def get_from_wildcard(self, mimetype):
    '''
    Get the handlers of the longest key that matches the MIME-type as a
    wildcard. Keys of equal length are compared lexically.
    '''
    matches = [k for k in self.default_apps if wildcard_match(k, mimetype)]
    if not matches:
      return None
    key = min(matches, key=lambda k: (-len(k), k))
    logging.debug('{} matched {}'.format(mimetype, key))
    return self.default_apps[key]



  def get_handler_from_user(self, mimetype, selector, use_selector):
    '''
    Get the default application of a MIME-type, checking for an exact match
    before wildcards. If there are several and use_selector is True, the user
    chooses one with the selector.
    '''
    handlers = self.default_apps.get(mimetype)
    if handlers is None:
      handlers = self.get_from_wildcard(mimetype)
    if not handlers:
      raise NotFound(mimetype)

    if use_selector and len(handlers) > 1:
      names = [(h, h.get_entry().name) for h in handlers]
      choice = select(selector, (n for _, n in names))
      for handler, name in names:
        if name == choice:
          return handler
      raise NotFound(mimetype)

    return handlers[0]



################################## SystemApps ##################################

def desktop_entries(user=True, system=True):
  '''
  Iterate over the names and entries of all valid desktop files. Invalid files
  are skipped.
  '''
  for path in desktop_paths(user=user, system=system):
    try:
      entry = parse_desktop_entry(path)
    except BadEntry as e:
      logging.debug('skipping {}'.format(e))
      continue
    yield os.path.basename(path), entry



class SystemApps(object):
  '''
  Associations declared by the installed desktop files.
  '''
  def __init__(self, associations=None, unassociated=None, entries=None):
    self.associations = dict(associations) if associations else dict()
    self.unassociated = list(unassociated) if unassociated else list()
    self.entries = collections.OrderedDict(entries) if entries else collections.OrderedDict()



  @classmethod
  def populate(cls, entries=None):
    '''
    Group desktop entries by MIME-type. entries is an iterable of name and
    DesktopEntry pairs and defaults to all installed desktop files.
    '''
    if entries is None:
      entries = desktop_entries()
    system_apps = cls()
    for name, entry in entries:
      system_apps.entries[name] = entry
      if entry.mime_types:
        handler = DesktopHandler(name)
        for m in entry.mime_types:
          system_apps.associations.setdefault(m, list()).append(handler)
      else:
        system_apps.unassociated.append(entry)
    return system_apps



  def get_handlers(self, mimetype):
    return self.associations.get(mimetype)



  def get_handler(self, mimetype):
    handlers = self.get_handlers(mimetype)
    if handlers:
      return handlers[0]
    return None



  def terminal_emulator(self):
    '''
    Get an installed terminal emulator from the entries without MIME-types.
    '''
    for entry in self.unassociated:
      if entry.is_terminal_emulator():
        return entry
    return None



  def list_handlers(self, out):
    for name, entry in self.entries.items():
      out.write('{}\t{}\n'.format(name, entry.name))



#################################### Config ####################################

def associations_to_rows(assocs):
  return [
    {'mime' : m, 'handlers' : [str(h) for h in hs]}
    for m, hs in sorted(assocs.items())
  ]



class Config(object):
  '''
  Everything needed to resolve and run handlers during one invocation.

  terminal_output:
    True if STDOUT is a terminal. Terminal programs then run in it instead of
    a new terminal emulator.
  '''
  def __init__(
    self,
    mime_apps=None,
    system_apps=None,
    settings=None,
    terminal_output=False,
  ):
    self.mime_apps = mime_apps if mime_apps is not None else MimeApps()
    self.system_apps = system_apps if system_apps is not None else SystemApps()
    self.settings = settings if settings is not None else Settings()
    self.terminal_output = terminal_output



  @classmethod
  def load(cls, config_path=None, mimeapps_path=None, terminal_output=None):
    '''
    Load the configuration file, the user's associations and the installed
    desktop files. An invalid configuration file is reported and replaced by
    the default settings.
    '''
    if terminal_output is None:
      terminal_output = sys.stdout.isatty()
    try:
      settings = load_settings(config_path)
    except ConfigError as e:
      logging.error(str(e))
      if not terminal_output:
        notify('{} error'.format(NAME.lower()), str(e))
      settings = Settings()
    return cls(
      mime_apps=MimeApps.read(mimeapps_path),
      system_apps=SystemApps.populate(),
      settings=settings,
      terminal_output=terminal_output,
    )



  def get_handler(self, mimetype):
    '''
    Get the handler of a MIME-type from the default applications, the added
    associations and the installed desktop files, in that order. A cancelled
    selection is never passed over.
    '''
    try:
      return self.mime_apps.get_handler_from_user(
        mimetype,
        self.settings.selector,
        self.settings.enable_selector
      )
    except Cancelled:
      raise
    except HandlrError as e:
      logging.debug('no default application: {}'.format(e))

    handlers = self.mime_apps.added_associations.get(mimetype)
    if handlers:
      return handlers[0]

    handler = self.system_apps.get_handler(mimetype)
    if handler:
      return handler

    raise NotFound(mimetype)



  def get_handler_from_path(self, arg):
    '''
    Get the handler of a path or URL. Regex handlers take precedence.
    '''
    try:
      return self.settings.get_regex_handler(arg)
    except NotFound:
      return self.get_handler(arg_to_mimetype(arg))



  def assign_files_to_handlers(self, args):
    '''
    Group arguments by handler.
    '''
    handlers = collections.OrderedDict()
    for arg in args:
      handlers.setdefault(self.get_handler_from_path(arg), list()).append(arg)
    return handlers



  def open_paths(self, args):
    '''
    Open paths and URLs with their handlers.
    '''
    for handler, handler_args in self.assign_files_to_handlers(args).items():
      handler.open(self, handler_args)



  def launch_handler(self, mimetype, args):
    '''
    Run the handler of a MIME-type with arbitrary arguments.
    '''
    self.get_handler(mimetype).launch(self, args)



  def show_handler(self, out, mimetype, output_json=False):
    handler = self.get_handler(mimetype)
    if output_json:
      entry = handler.get_entry()
      cmd = entry.get_cmd(self, list())
      output = json.dumps({
        'handler' : str(handler),
        'name' : entry.name,
        'cmd' : ' '.join(cmd),
      })
    else:
      output = str(handler)
    out.write(output + '\n')



  def set_handler(self, mimetype, handler):
    self.mime_apps.set_handler(
      mimetype, handler, expand_wildcards=self.settings.expand_wildcards
    )
    self.mime_apps.save()



  def add_handler(self, mimetype, handler):
    self.mime_apps.add_handler(
      mimetype, handler, expand_wildcards=self.settings.expand_wildcards
    )
    self.mime_apps.save()



  def unset_handler(self, mimetype):
    if self.mime_apps.unset_handler(mimetype):
      self.mime_apps.save()



  def remove_handler(self, mimetype, handler):
    if self.mime_apps.remove_handler(mimetype, handler):
      self.mime_apps.save()



  def override_selector(self, selector=None, enable=False, disable=False):
    self.settings.override_selector(selector=selector, enable=enable, disable=disable)



  def terminal(self):
    '''
    Get the terminal emulator command. The handler of x-scheme-handler/terminal
    is used if there is one. Otherwise an installed terminal emulator is
    guessed and saved as that handler.
    '''
    entry = None
    try:
      entry = self.get_handler(MIMETYPE_TERMINAL).get_entry()
    except Cancelled:
      raise
    except HandlrError as e:
      logging.debug('no terminal handler: {}'.format(e))

    if entry is None:
      entry = self.system_apps.terminal_emulator()
      if entry is None:
        raise NoTerminal()
      notify(
        NAME.lower(),
        'Guessed terminal emulator: {}.\n\nIf this is wrong, use `{} set {}` to update it.'.format(
          entry.file_name, NAME.lower(), MIMETYPE_TERMINAL
        )
      )
      self.mime_apps.set_handler(MIMETYPE_TERMINAL, DesktopHandler(entry.file_name))
      self.mime_apps.save()

    try:
      cmd = expand_exec(entry.exe, list(), path=entry.file_name)
    except BadExec:
      raise BadCmd(entry.exe)
    if self.settings.term_exec_args:
      cmd.extend(split_cmd(self.settings.term_exec_args))
    return cmd



  def print(self, out, detailed=False, output_json=False):
    '''
    Print the default applications. If detailed is True, also print the added
    associations and the associations of the installed desktop files.
    '''
    tables = collections.OrderedDict((
      ('default_apps', associations_to_rows(self.mime_apps.default_apps)),
      ('added_associations', associations_to_rows(self.mime_apps.added_associations)),
      ('system_apps', associations_to_rows(self.system_apps.associations)),
    ))
    if output_json:
      if detailed:
        out.write(json.dumps(tables) + '\n')
      else:
        out.write(json.dumps(tables['default_apps']) + '\n')
      return

    titles = (
      ('default_apps', 'Default Apps'),
      ('added_associations', 'Added Associations'),
      ('system_apps', 'System Apps'),
    )
    for key, title in titles:
      rows = tables[key]
      if detailed:
        # Added associations are rarely used.
        if key == 'added_associations' and not rows:
          continue
        out.write('{}\n'.format(title))
      print_collection(
        collections.OrderedDict((r['mime'], r['handlers']) for r in rows),
        out=out
      )
      if not detailed:
        break



def print_mimetypes(out, args, output_json=False):
  '''
  Print the MIME-types of paths and URLs.
  '''
  rows = [{'path' : a, 'mime' : arg_to_mimetype(a)} for a in args]
  if output_json:
    out.write(json.dumps(rows) + '\n')
  else:
    for row in rows:
      out.write('{}\t{}\n'.format(row['path'], row['mime']))



############################### Argument parsing ###############################

def add_selector_arguments(parser, default):
  '''
  Add the selector options to a parser. Subcommand parsers use
  argparse.SUPPRESS so that they do not overwrite values given before the
  subcommand.
  '''
  selector_group = parser.add_argument_group(
    'Selector',
    'Options to choose among several handlers of a MIME-type. The last of --enable-selector and --disable-selector wins.'
  )
  selector_group.add_argument(
    '--selector', metavar='<cmd>', default=default,
    help='Override the selector command. It receives the handler names on STDIN and must print the chosen one.'
  )
  selector_group.add_argument(
    '--enable-selector', dest='selector_mode', action='store_const',
    const=SELECTOR_ENABLE, default=default,
    help='Use the selector if several handlers are set.'
  )
  selector_group.add_argument(
    '--disable-selector', dest='selector_mode', action='store_const',
    const=SELECTOR_DISABLE, default=default,
    help='Never use the selector.'
  )



def get_argparser():
  parser = argparse.ArgumentParser(
    prog=NAME.lower(),
    description='Open paths and URLs with their preferred applications and manage MIME-type associations, with support for wildcards, multiple handlers and regular expressions.',
    epilog='Settings are read from {}. Additional arguments are read from the first line of {}.'.format(
      default_config_path(), default_arguments_path()
    ),
  )

  parser.add_argument(
    '--debug', action='store_true',
    help='Enable debugging messages.'
  )

  parser.add_argument(
    '--no-def-args', dest='use_default_args', action='store_false',
    help='Omit the default arguments.'
  )

  # The selector options are accepted before the subcommand, where the default
  # arguments are inserted, and after it. Values after the subcommand win.
  add_selector_arguments(parser, None)

  selector_parser = argparse.ArgumentParser(add_help=False)
  add_selector_arguments(selector_parser, argparse.SUPPRESS)

  subparsers = parser.add_subparsers(
    dest='command',
    metavar='<command>',
  )
  subparsers.required = True

  list_parser = subparsers.add_parser(
    'list',
    help='List default applications and their handlers.'
  )
  list_parser.add_argument(
    '-a', '--all', action='store_true',
    help='Also list added associations and the associations of installed desktop files.'
  )
  list_parser.add_argument(
    '--json', action='store_true',
    help='Output JSON.'
  )

  open_parser = subparsers.add_parser(
    'open', parents=[selector_parser],
    help='Open paths and URLs with their handlers.'
  )
  open_parser.add_argument('paths', nargs='+', metavar='<path>')

  set_parser = subparsers.add_parser(
    'set',
    help='Set the default handler of a MIME-type, replacing any others. Wildcards such as "video/*" are allowed.'
  )
  set_parser.add_argument('mime', metavar='<mime>')
  set_parser.add_argument('handler', metavar='<desktop file>')

  unset_parser = subparsers.add_parser(
    'unset',
    help='Remove all handlers of a MIME-type. A literal wildcard entry is preferred, otherwise a wildcard applies to all matching entries.'
  )
  unset_parser.add_argument('mime', metavar='<mime>')

  launch_parser = subparsers.add_parser(
    'launch', parents=[selector_parser],
    help='Run the handler of a MIME-type with the given arguments.'
  )
  launch_parser.add_argument('mime', metavar='<mime>')
  launch_parser.add_argument('args', nargs=argparse.REMAINDER, metavar='<arg>')

  get_parser = subparsers.add_parser(
    'get', parents=[selector_parser],
    help='Print the handler of a MIME-type.'
  )
  get_parser.add_argument(
    '--json', action='store_true',
    help='Output the handler, its name and its command as JSON.'
  )
  get_parser.add_argument('mime', metavar='<mime>')

  add_parser = subparsers.add_parser(
    'add',
    help='Add a handler to a MIME-type after the existing ones. The first handler is the default.'
  )
  add_parser.add_argument('mime', metavar='<mime>')
  add_parser.add_argument('handler', metavar='<desktop file>')

  remove_parser = subparsers.add_parser(
    'remove',
    help='Remove a handler from a MIME-type.'
  )
  remove_parser.add_argument('mime', metavar='<mime>')
  remove_parser.add_argument('handler', metavar='<desktop file>')

  mime_parser = subparsers.add_parser(
    'mime',
    help='Print the MIME-types of paths and URLs.'
  )
  mime_parser.add_argument(
    '--json', action='store_true',
    help='Output JSON.'
  )
  mime_parser.add_argument('paths', nargs='+', metavar='<path>')

  autocomplete_parser = subparsers.add_parser(
    'autocomplete',
    help='List completion candidates.'
  )
  autocomplete_group = autocomplete_parser.add_mutually_exclusive_group(required=True)
  autocomplete_group.add_argument(
    '-d', '--desktop-files', action='store_true',
    help='List installed desktop files and their names.'
  )
  autocomplete_group.add_argument(
    '-m', '--mimes', action='store_true',
    help='List known MIME-types.'
  )

  return parser



##################################### Main #####################################

def main(args=None, config=None, out=None):
  if args is None:
    args = sys.argv[1:]
  if out is None:
    out = sys.stdout
  parser = get_argparser()
  pargs = parser.parse_args(args)

  if pargs.use_default_args:
    extra_args = default_arguments()
    if extra_args:
      logging.debug('prepending arguments: {}'.format(quote_cmd(extra_args)))
      args = extra_args + args
      pargs = parser.parse_args(args)

  # The default arguments may enable debugging.
  if pargs.debug:
    logging.getLogger().setLevel(logging.DEBUG)

  if config is None:
    config = Config.load()

  if pargs.command in SELECTOR_COMMANDS:
    config.override_selector(
      selector=pargs.selector,
      enable=(pargs.selector_mode == SELECTOR_ENABLE),
      disable=(pargs.selector_mode == SELECTOR_DISABLE),
    )

  command = pargs.command

  if command == 'list':
    config.print(out, detailed=pargs.all, output_json=pargs.json)

  elif command == 'open':
    config.open_paths(pargs.paths)

  elif command in ('set', 'add', 'remove'):
    mimetype = mime_or_extension(pargs.mime)
    handler = DesktopHandler.resolve(ensure_desktop_name(pargs.handler))
    if command == 'set':
      config.set_handler(mimetype, handler)
    elif command == 'add':
      config.add_handler(mimetype, handler)
    else:
      config.remove_handler(mimetype, handler)

  elif command == 'unset':
    config.unset_handler(mime_or_extension(pargs.mime))

  elif command == 'launch':
    config.launch_handler(mime_or_extension(pargs.mime), pargs.args)

  elif command == 'get':
    config.show_handler(out, mime_or_extension(pargs.mime), output_json=pargs.json)

  elif command == 'mime':
    print_mimetypes(out, pargs.paths, output_json=pargs.json)

  elif command == 'autocomplete':
    if pargs.desktop_files:
      config.system_apps.list_handlers(out)
    else:
      for m in sorted(known_mimetypes()):
        print(m, file=out)



def report_error(error, terminal_output):
  '''
  Print an error if STDOUT is a terminal. Otherwise there is probably nobody to
  read it so a notification is sent instead.
  '''
  if terminal_output:
    sys.stderr.write('{}: error: {}\n'.format(NAME, error))
  else:
    notify('{} error'.format(NAME.lower()), str(error))



def run(args=None):
  '''
  Entry point of the command-line tool.
  '''
  if args is None:
    args = sys.argv[1:]
  logging.basicConfig(
    format='%(levelname)s: %(message)s',
    level=logging.DEBUG if ('--debug' in args) else logging.WARNING
  )
  terminal_output = sys.stdout.isatty()
  try:
    main(args)
  except (KeyboardInterrupt, BrokenPipeError):
    pass
  except Cancelled:
    sys.exit(1)
  except (HandlrError, OSError) as e:
    report_error(e, terminal_output)
    sys.exit(1)



if __name__ == '__main__':
  run()
