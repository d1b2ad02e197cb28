import sys
import config, daemon, render, rules, util
from util import AccountingError


def add_intf(p_res):
	intf = p_res.intf
	if intf not in util.get_interfaces():
		print('Warning : interface [%s] does not exist on system' % intf)
	util.acct_log('update [%s]' % intf)
	rules.NflogRuleManager(rules.NflogHookSpec(p_res.hook)).install(intf)
	print('Adding flow-accounting for [%s]' % intf)


def del_intf(p_res):
	intf = p_res.intf
	util.acct_log('stop [%s]' % intf)
	rules.NflogRuleManager(rules.NflogHookSpec(p_res.hook)).remove(intf)
	print('Removing flow-accounting for [%s]' % intf)


def update(p_res):
	util.acct_log('update')
	tree = config.ConfigTree.load(p_res.snapshot)
	acct = config.FlowAccountingConfig.from_tree(tree)
	print('[*] flow-accounting configuration.')
	print(acct)

	ctrl = daemon.LifecycleController(daemon.Daemon(), p_res.conf_file)
	result = ctrl.update(acct.interfaces, lambda: render.render_config(tree))
	print('[*] flow-accounting %s.' % result)


def list_intf(p_res):
	tree = config.ConfigTree.load(p_res.snapshot)
	print('\n'.join(tree.values(config.ACCT_PATH + ' interface')), end='')


_ACTIONS_MAP = {
	'add-intf':  add_intf,
	'del-intf':  del_intf,
	'update':    update,
	'list-intf': list_intf,
}


def main(args=None):
	p_res = config.get_config(sys.argv[1:] if args is None else args)

	util.init_acct_log(p_res.log_file)

	try:
		_ACTIONS_MAP[p_res.action](p_res)
	except (AccountingError, OSError) as e:
		print('[-] error: %s' % e, file=sys.stderr)
		return 1
	return 0


#start execution
if __name__ == "__main__":
	sys.exit(main())
