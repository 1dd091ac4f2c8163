'''Tests for settings, regex handlers and handler resolution.'''

import collections

import pytest

import Handlr
from Handlr import Config, DesktopHandler, MimeApps, RegexHandler, Settings, SystemApps


YOUTUBE_REGEX = r'(https://)?(www\.)?youtu(be\.com|\.be)/*'


class TestLoadSettings:
  '''Test reading handlr.toml.'''

  def test_missing_file_is_created_with_defaults(self, tmp_path):
    path = tmp_path / 'handlr' / 'handlr.toml'
    settings = Handlr.load_settings(str(path))
    assert path.exists()
    assert settings.selector == Handlr.DEFAULT_SELECTOR
    assert not settings.enable_selector
    reloaded = Handlr.load_settings(str(path))
    assert vars(reloaded) == vars(settings)

  def test_defaults(self):
    settings = Settings()
    assert settings.selector == "rofi -dmenu -i -p 'Open With: '"
    assert settings.enable_selector is False
    assert settings.term_exec_args == '-e'
    assert settings.expand_wildcards is False
    assert settings.handlers == []

  def test_values(self, tmp_path):
    path = tmp_path / 'handlr.toml'
    path.write_text('''
enable_selector = true
selector = "fuzzel --dmenu"
term_exec_args = ""
expand_wildcards = true

[[handlers]]
exec = "freetube %u"
regexes = ['{}']
'''.format(YOUTUBE_REGEX))
    settings = Handlr.load_settings(str(path))
    assert settings.enable_selector
    assert settings.selector == 'fuzzel --dmenu'
    assert settings.term_exec_args is None
    assert settings.expand_wildcards
    assert settings.handlers == [RegexHandler('freetube %u', [YOUTUBE_REGEX])]

  def test_partial_file_keeps_defaults(self, tmp_path):
    path = tmp_path / 'handlr.toml'
    path.write_text('enable_selector = true\nunknown = 1\n')
    settings = Handlr.load_settings(str(path))
    assert settings.enable_selector
    assert settings.selector == Handlr.DEFAULT_SELECTOR
    assert settings.term_exec_args == '-e'

  @pytest.mark.parametrize('content', [
    'enable_selector = "yes"',
    'selector = 1',
    'this is not toml',
    '[[handlers]]\nterminal = true',
    '[[handlers]]\nexec = "foo"\nregexes = ["("]',
    '[[handlers]]\nexec = "foo"\nterminal = "no"',
    'handlers = 1',
  ])
  def test_invalid(self, tmp_path, content):
    path = tmp_path / 'handlr.toml'
    path.write_text(content)
    with pytest.raises(Handlr.ConfigError):
      Handlr.load_settings(str(path))

  def test_config_load_falls_back_to_defaults(self, xdg_home):
    path = xdg_home / 'config' / 'handlr' / 'handlr.toml'
    path.parent.mkdir()
    path.write_text('enable_selector = "yes"')
    config = Config.load(terminal_output=True)
    assert vars(config.settings) == vars(Settings())
    assert (xdg_home / 'config' / 'mimeapps.list').exists()


class TestOverrideSelector:
  '''Test the selector options from the command line.'''

  def test_enable(self):
    settings = Settings(enable_selector=False)
    settings.override_selector(enable=True)
    assert settings.enable_selector

  def test_disable(self):
    settings = Settings(enable_selector=True)
    settings.override_selector(disable=True)
    assert not settings.enable_selector

  def test_disable_wins(self):
    settings = Settings(enable_selector=False)
    settings.override_selector(enable=True, disable=True)
    assert not settings.enable_selector

  def test_no_flags_keep_setting(self):
    settings = Settings(enable_selector=True)
    settings.override_selector()
    assert settings.enable_selector
    assert settings.selector == Handlr.DEFAULT_SELECTOR

  def test_selector_command(self):
    config = Config()
    config.override_selector(selector='fzf')
    assert config.settings.selector == 'fzf'
    assert not config.settings.enable_selector


class TestRegexHandler:
  '''Test handlers matched by regular expressions.'''

  def test_match(self):
    handler = RegexHandler('freetube %u', [YOUTUBE_REGEX])
    settings = Settings(handlers=[handler])
    assert settings.get_regex_handler('https://youtu.be/dQw4w9WgXcQ') == handler
    with pytest.raises(Handlr.NotFound):
      settings.get_regex_handler('https://en.wikipedia.org')

  def test_first_match_wins(self):
    first = RegexHandler('first %u', ['example'])
    second = RegexHandler('second %u', ['example\\.com'])
    assert Settings(handlers=[first, second]).get_regex_handler('https://example.com') == first

  def test_equality(self):
    assert RegexHandler('a', ['x']) == RegexHandler('a', ['x'])
    assert RegexHandler('a', ['x']) != RegexHandler('a', ['x'], terminal=True)
    assert len({RegexHandler('a', ['x']), RegexHandler('a', ['x'])}) == 1

  def test_entry(self):
    entry = RegexHandler('mpv %u', ['x'], terminal=True).get_entry()
    assert entry.exe == 'mpv %u'
    assert entry.terminal

  def test_open(self, commands):
    handler = RegexHandler('freetube %u', [YOUTUBE_REGEX])
    config = Config(settings=Settings(handlers=[handler]))
    config.open_paths(['https://youtu.be/dQw4w9WgXcQ'])
    assert commands == [(['freetube', 'https://youtu.be/dQw4w9WgXcQ'], False)]


class TestGetHandler:
  '''Test the order in which associations are consulted.'''

  def test_default_apps_first(self):
    mime_apps = MimeApps(
      default_apps={'text/plain' : [DesktopHandler('helix.desktop')]},
      added_associations={'text/plain' : [DesktopHandler('nvim.desktop')]},
    )
    system_apps = SystemApps(associations={'text/plain' : [DesktopHandler('gedit.desktop')]})
    config = Config(mime_apps=mime_apps, system_apps=system_apps)
    assert config.get_handler('text/plain') == DesktopHandler('helix.desktop')

  def test_added_associations(self):
    mime_apps = MimeApps(added_associations={'text/plain' : [DesktopHandler('nvim.desktop')]})
    system_apps = SystemApps(associations={'text/plain' : [DesktopHandler('gedit.desktop')]})
    config = Config(mime_apps=mime_apps, system_apps=system_apps)
    assert config.get_handler('text/plain') == DesktopHandler('nvim.desktop')

  def test_system_apps(self):
    system_apps = SystemApps(associations={'text/plain' : [DesktopHandler('gedit.desktop')]})
    assert Config(system_apps=system_apps).get_handler('text/plain') == DesktopHandler('gedit.desktop')

  def test_wildcards_before_system_apps(self):
    mime_apps = MimeApps(default_apps={'text/*' : [DesktopHandler('helix.desktop')]})
    system_apps = SystemApps(associations={'text/plain' : [DesktopHandler('gedit.desktop')]})
    config = Config(mime_apps=mime_apps, system_apps=system_apps)
    assert config.get_handler('text/plain') == DesktopHandler('helix.desktop')

  def test_not_found(self):
    with pytest.raises(Handlr.NotFound):
      Config().get_handler('text/plain')

  def test_cancelled_is_not_passed_over(self, desktop_file, selector_script):
    desktop_file('helix.desktop', 'Helix', 'hx %F')
    desktop_file('nvim.desktop', 'Neovim', 'nvim %F')
    mime_apps = MimeApps(default_apps={
      'text/plain' : [DesktopHandler('helix.desktop'), DesktopHandler('nvim.desktop')]
    })
    system_apps = SystemApps(associations={'text/plain' : [DesktopHandler('gedit.desktop')]})
    settings = Settings(enable_selector=True, selector=selector_script(''))
    config = Config(mime_apps=mime_apps, system_apps=system_apps, settings=settings)
    with pytest.raises(Handlr.Cancelled):
      config.get_handler('text/plain')


class TestAssignFiles:
  '''Test grouping paths by handler.'''

  def test_properly_assign_files_to_handlers(self, tmp_path):
    mime_apps = MimeApps(default_apps={
      'image/png' : [DesktopHandler('swayimg.desktop')],
      'application/pdf' : [DesktopHandler('mupdf.desktop')],
    })
    config = Config(mime_apps=mime_apps)
    paths = [str(tmp_path / n) for n in ('a.png', 'a.pdf', 'b.png')]
    assert config.assign_files_to_handlers(paths) == collections.OrderedDict((
      (DesktopHandler('swayimg.desktop'), [paths[0], paths[2]]),
      (DesktopHandler('mupdf.desktop'), [paths[1]]),
    ))

  def test_open_paths(self, desktop_file, tmp_path, commands):
    desktop_file('mupdf.desktop', 'MuPDF', 'mupdf %f')
    desktop_file('swayimg.desktop', 'Swayimg', 'swayimg %F')
    mime_apps = MimeApps(default_apps={
      'image/png' : [DesktopHandler('swayimg.desktop')],
      'application/pdf' : [DesktopHandler('mupdf.desktop')],
    })
    a, b, c, d = (str(tmp_path / n) for n in ('a.png', 'b.png', 'c.pdf', 'd.pdf'))
    Config(mime_apps=mime_apps).open_paths([a, c, b, d])
    assert commands == [
      (['swayimg', a, b], False),
      (['mupdf', c], False),
      (['mupdf', d], False),
    ]

  def test_launch_handler(self, desktop_file, commands):
    desktop_file('mupdf.desktop', 'MuPDF', 'mupdf %f')
    mime_apps = MimeApps(default_apps={'application/pdf' : [DesktopHandler('mupdf.desktop')]})
    Config(mime_apps=mime_apps).launch_handler('application/pdf', ['--help'])
    assert commands == [(['mupdf', '--help'], False)]


class TestSelect:
  '''Test running the selector.'''

  def test_choice(self, selector_script):
    assert Handlr.select(selector_script('Beta'), ['Alpha', 'Beta', 'Gamma']) == 'Beta'
    assert selector_script.record.read_text() == 'Alpha\nBeta\nGamma'

  def test_cancelled(self, selector_script):
    with pytest.raises(Handlr.Cancelled):
      Handlr.select(selector_script(''), ['Alpha'])

  def test_bad_command(self):
    with pytest.raises(Handlr.BadCmd):
      Handlr.select('rofi "-dmenu', ['Alpha'])

  def test_missing_program(self, tmp_path):
    with pytest.raises(Handlr.SelectorError):
      Handlr.select(str(tmp_path / 'missing-selector'), ['Alpha'])
