# -*- coding: utf-8 -*-
from setuptools import setup

package_dir = \
{'': 'python'}

packages = \
['handoff',
 'handoff.demo',
 'handoff.utils',
 'handoff.utils.compat']

install_requires = \
['aiohttp>=3.9', 'pyyaml', 'typing-extensions']

extras_require = \
{'test': ['pytest', 'pytest-asyncio']}

entry_points = \
{'console_scripts': ['handoff-demo = handoff.demo.main:main']}

setup_kwargs = {
    'name': 'handoff',
    'version': '1.0.0',
    'description': 'Zero-downtime restarts for long-running servers - the listening socket is handed over to a new process without ever being closed',
    'long_description': open('README.md', encoding='utf-8').read(),
    'long_description_content_type': 'text/markdown',
    'package_dir': package_dir,
    'packages': packages,
    'install_requires': install_requires,
    'extras_require': extras_require,
    'entry_points': entry_points,
    'python_requires': '>=3.8,<4.0',
}

setup(**setup_kwargs)
