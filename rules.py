import re

import util
from config import HookPolicy
from util import ExternalCommandError


IPTABLES = 'iptables'

#NFLOG tuning, see http://wiki.pmacct.net/OfficialConfigKeys
NFLOG_GROUP     = 2
NFLOG_RANGE     = 64 #bytes of each packet copied to userspace
NFLOG_THRESHOLD = 10 #packets batched per netlink message

#(chain, table) pairs per policy
_HOOKS_MAP = {
	HookPolicy.EARLY: (('VYATTA_CT_PREROUTING_HOOK', 'raw'),),
	HookPolicy.LATE:  (('VYATTA_POST_FW_IN_HOOK', 'filter'), ('VYATTA_POST_FW_FWD_HOOK', 'filter')),
}

_RULE_LINE = re.compile(r'^[0-9]')


class NflogHookSpec(object):
	"""
	the chains an NFLOG rule is inserted into, plus the NFLOG target options
	"""
	def __init__(self, policy=HookPolicy.EARLY, group=NFLOG_GROUP, nl_range=NFLOG_RANGE,
			threshold=NFLOG_THRESHOLD):
		self.policy    = policy
		self.group     = group
		self.nl_range  = nl_range
		self.threshold = threshold

	def get_chains(self):
		return _HOOKS_MAP[self.policy]

	def get_target_args(self):
		args = ['-j', 'NFLOG', '--nflog-group', str(self.group)]
		if self.nl_range is not None:
			args += ['--nflog-range', str(self.nl_range)]
		if self.threshold is not None:
			args += ['--nflog-threshold', str(self.threshold)]
		return args


class RuleEntry(object):
	"""
	one line of 'iptables -vnL <chain> --line-numbers'
	"""
	def __init__(self, num, target, in_iface):
		self.num      = num
		self.target   = target
		self.in_iface = in_iface

	@staticmethod
	def parse(line):
		#num pkts bytes target prot opt in out source destination
		fields = line.split()
		if len(fields) < 7:
			return None
		return RuleEntry(int(fields[0]), fields[3], fields[6])

	def __repr__(self):
		return 'RuleEntry(%d, %r, %r)' % (self.num, self.target, self.in_iface)


class NflogRuleManager(object):
	"""
	Install and remove per-interface NFLOG hooks.

	Removal lists the chain and deletes by line number, so the table must not
	be modified by anyone else between the two steps; callers are expected to
	be serialized by the configuration system.
	"""
	def __init__(self, hook_spec=None, runner=util.run_cmd):
		self.hook_spec = hook_spec or NflogHookSpec()
		self.runner    = runner

	def install(self, intf):
		"""
		insert the NFLOG rule for intf at the top of every hook chain
		"""
		for chain, table in self.hook_spec.get_chains():
			cmd = [IPTABLES, '-t', table, '-I', chain, '1', '-i', intf] + self.hook_spec.get_target_args()
			code, _ = self.runner(cmd)
			if code != 0:
				raise ExternalCommandError(cmd, code)

	def list_rules(self, chain, table):
		cmd = [IPTABLES, '-t', table, '-vnL', chain, '--line-numbers']
		_, out = self.runner(cmd)
		entries = []
		for line in (out or '').splitlines():
			if not _RULE_LINE.match(line):
				continue
			entry = RuleEntry.parse(line)
			if entry:
				entries.append(entry)
		return entries

	def remove(self, intf):
		"""
		delete the first rule matching intf from every hook chain
		"""
		for chain, table in self.hook_spec.get_chains():
			entries = self.list_rules(chain, table)
			if not entries:
				raise ExternalCommandError([IPTABLES, '-t', table, '-vnL', chain], 1,
					'failed to find NFLOG entry for %s => %s' % (chain, table))

			match = None
			for entry in entries:
				if entry.in_iface == intf:
					match = entry
					break
			if match is None:
				raise ExternalCommandError([IPTABLES, '-t', table, '-vnL', chain], 1,
					'failed to find target for [%s]' % intf)

			cmd = [IPTABLES, '-t', table, '-D', chain, str(match.num)]
			code, _ = self.runner(cmd)
			if code != 0:
				raise ExternalCommandError(cmd, code, 'failed to delete target')
